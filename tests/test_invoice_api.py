"""API tests for /api/v1/invoices against a per-test SQLite database."""
from decimal import Decimal
from uuid import UUID

import pytest
from sqlalchemy import select

from app.models.gst_rate import GstRate
from app.models.job import Job, JobFieldValue, JobRegister, JobServiceCharge
from app.services.invoice_service import financial_year_pair

BASE = "/api/v1/invoices"


@pytest.fixture
async def seeded(session_factory):
    """
    Two closed Service_Reimbursement jobs on one register (9/9/18 GST).

    job_a: 500 + 1% of 100000 = 1500, registration 200, 2 CA certs at 100,
           application fees 150, Freight 50 -> final 2442.00 alone
    job_b: max(2% of 20000, 500) = 500 -> 3032.00 together with job_a
    """
    async with session_factory() as session:
        rate = GstRate(sac_no="998212", cgst=Decimal("9"), sgst=Decimal("9"), igst=Decimal("18"))
        register = JobRegister(job_code="DBK", job_title="Drawback Claim", gst_rate=rate)
        job_a = Job(
            job_no="JOB-001",
            account_id=7,
            job_register=register,
            status="Closed",
            billing_type="Service_Reimbursement",
            invoice_type="full_invoice",
            field_values=[
                JobFieldValue(field_name="Claim Amount after Finalization", field_value="100000"),
                JobFieldValue(field_name="No of CAC", field_value="2"),
            ],
            service_charges=[
                JobServiceCharge(
                    fixed=Decimal("500"),
                    in_percentage=Decimal("1"),
                    registration_other_charges=Decimal("200"),
                    ca_charges=Decimal("100"),
                    application_fees=Decimal("150"),
                    remi_one_desc="Freight",
                    remi_one_charges="50",
                    gst_type="SC",
                ),
            ],
        )
        job_b = Job(
            job_no="JOB-002",
            account_id=7,
            job_register=register,
            status="Closed",
            billing_type="Service_Reimbursement",
            invoice_type="full_invoice",
            field_values=[
                JobFieldValue(field_name="claim_amount_after_finalization", field_value="20000"),
            ],
            service_charges=[
                JobServiceCharge(in_percentage=Decimal("2"), min=Decimal("500"), gst_type="SC"),
            ],
        )
        session.add_all([rate, register, job_a, job_b])
        await session.commit()
        return {"register": str(register.id), "a": str(job_a.id), "b": str(job_b.id)}


async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"


async def test_sample_single_job(client, seeded):
    response = await client.post(f"{BASE}/sample", json={"jobIds": [seeded["a"]]})
    assert response.status_code == 200
    data = response.json()

    assert Decimal(data["professionalCharges"]) == Decimal("1500")
    assert Decimal(data["caCharges"]) == Decimal("200")
    assert Decimal(data["serviceSubtotal"]) == Decimal("1900")
    assert Decimal(data["gst"]["cgstAmount"]) == Decimal("171")
    assert Decimal(data["remiCharges"]["remi_one"]) == Decimal("50")
    assert Decimal(data["finalAmount"]) == Decimal("2442")
    assert data["amountInWords"].startswith("Rupees Two Thousand")
    assert data["annexure"] is None


async def test_sample_multi_job_annexure(client, seeded):
    response = await client.post(f"{BASE}/sample", json={"jobIds": [seeded["a"], seeded["b"]]})
    assert response.status_code == 200
    data = response.json()

    assert Decimal(data["finalAmount"]) == Decimal("3032")
    annexure = data["annexure"]
    assert [column["description"] for column in annexure["columns"]["remi"]] == ["Freight"]
    assert [row["jobNo"] for row in annexure["rows"]] == ["JOB-001", "JOB-002"]
    assert Decimal(annexure["rows"][1]["remi"][0]["charges"]) == Decimal("0")
    # untaxed row totals: 1500 + 200 + 200 + 150 + 50 and 500
    assert Decimal(annexure["totals"]["total"]) == Decimal("2600")


async def test_sample_reward_percent_and_billing_label(client, seeded):
    response = await client.post(
        f"{BASE}/sample",
        json={
            "jobIds": [seeded["a"]],
            "billingType": "Service & Reimbursement",
            "rewardDiscountPercent": "-10",
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert data["billingType"] == "Service_Reimbursement"
    assert Decimal(data["discountAmount"]) == Decimal("150")
    assert Decimal(data["serviceSubtotal"]) == Decimal("1750")


async def test_sample_validation(client, seeded):
    response = await client.post(f"{BASE}/sample", json={"jobIds": []})
    assert response.status_code == 400

    response = await client.post(f"{BASE}/sample", json={"jobIds": [seeded["a"]], "billingType": "Goods"})
    assert response.status_code == 422

    response = await client.post(
        f"{BASE}/sample", json={"jobIds": ["00000000-0000-4000-8000-000000000000"]}
    )
    assert response.status_code == 400


async def test_create_get_list_delete(client, seeded):
    response = await client.post(f"{BASE}", json={"jobIds": [seeded["a"]], "remark": "April"})
    assert response.status_code == 201
    invoice = response.json()

    assert invoice["draftViewId"] == f"D7{financial_year_pair()}0001"
    assert invoice["jobRegisterId"] == seeded["register"]
    assert invoice["jobIds"] == [seeded["a"]]
    assert invoice["invoiceStatus"] == "Active"
    assert invoice["invoiceStageStatus"] == "Draft"
    assert Decimal(invoice["finalAmount"]) == Decimal("2442")
    assert Decimal(invoice["remiOneCharges"]) == Decimal("50")
    assert invoice["amountInWords"].endswith("Only")

    response = await client.get(f"{BASE}/{invoice['id']}")
    assert response.status_code == 200
    detail = response.json()
    assert Decimal(detail["breakdown"]["finalAmount"]) == Decimal("2442")

    response = await client.get(BASE)
    assert response.status_code == 200
    assert response.json()["total"] == 1

    # same job, same billing type
    response = await client.post(f"{BASE}", json={"jobIds": [seeded["a"]]})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Job already invoiced for this billing type"

    response = await client.delete(f"{BASE}/{invoice['id']}")
    assert response.status_code == 200
    assert response.json()["invoiceStatus"] == "Delete"
    assert response.json()["invoiceStageStatus"] == "Canceled"

    # deleted invoices release their jobs; ids are never reused
    response = await client.post(f"{BASE}", json={"jobIds": [seeded["a"]]})
    assert response.status_code == 201
    assert response.json()["draftViewId"] == f"D7{financial_year_pair()}0002"

    response = await client.get(BASE, params={"invoiceStatus": "Active"})
    assert response.json()["total"] == 1


async def test_service_invoice_nulls_reimbursement_columns(client, seeded):
    response = await client.post(f"{BASE}", json={"jobIds": [seeded["a"]], "billingType": "Service"})
    assert response.status_code == 201
    invoice = response.json()
    assert invoice["billingType"] == "Service"
    assert invoice["applicationFees"] is None
    assert invoice["remiOneCharges"] is None
    assert Decimal(invoice["finalAmount"]) == Decimal("2242")


async def test_get_missing_invoice(client):
    response = await client.get(f"{BASE}/00000000-0000-4000-8000-000000000000")
    assert response.status_code == 404
    response = await client.delete(f"{BASE}/00000000-0000-4000-8000-000000000000")
    assert response.status_code == 404


async def test_partial_invoices_compound(client, seeded):
    body = {
        "jobIds": [seeded["a"]],
        "invoiceType": "partial_invoice",
        "payAmounts": {"professionalCharges": 500},
    }
    response = await client.post(f"{BASE}", json=body)
    assert response.status_code == 201
    first = response.json()
    assert first["invoiceType"] == "partial_invoice"
    assert Decimal(first["professionalCharges"]) == Decimal("500")
    assert Decimal(first["registrationOtherCharges"]) == Decimal("0")
    assert Decimal(first["finalAmount"]) == Decimal("590")

    # second partial: pay is clamped to what is left
    body["payAmounts"] = {"professional_charges": 5000}
    response = await client.post(f"{BASE}/sample", json=body)
    assert response.status_code == 200
    data = response.json()
    assert data["isPartialMode"] is True
    entry = next(e for e in data["ledger"] if e["bucket"] == "professional_charges")
    assert Decimal(entry["opening"]) == Decimal("500")
    assert Decimal(entry["pay"]) == Decimal("1000")
    assert Decimal(entry["remaining"]) == Decimal("0")

    # a partial invoice needs at least one pay amount
    response = await client.post(
        f"{BASE}", json={"jobIds": [seeded["a"]], "invoiceType": "partial_invoice"}
    )
    assert response.status_code == 400


async def test_eligible_jobs(client, seeded):
    params = {
        "jobRegisterId": seeded["register"],
        "billingType": "Service_Reimbursement",
        "invoiceType": "full_invoice",
    }
    response = await client.get(f"{BASE}/eligible-jobs", params=params)
    assert response.status_code == 200
    assert {job["id"] for job in response.json()} == {seeded["a"], seeded["b"]}

    await client.post(f"{BASE}", json={"jobIds": [seeded["a"]]})

    response = await client.get(f"{BASE}/eligible-jobs", params=params)
    assert [job["id"] for job in response.json()] == [seeded["b"]]

    response = await client.get(f"{BASE}/eligible-jobs", params={**params, "billingType": "Goods"})
    assert response.status_code == 400


async def test_sample_accepts_snake_case_and_ignores_unknown_keys(client, seeded):
    response = await client.post(
        f"{BASE}/sample",
        json={"job_ids": [seeded["a"]], "billing_type": "Service", "clientScreen": "creation"},
    )
    assert response.status_code == 200
    assert Decimal(response.json()["finalAmount"]) == Decimal("2242")


async def test_partial_invoice_takes_a_single_job(client, seeded):
    body = {
        "jobIds": [seeded["a"], seeded["b"]],
        "invoiceType": "partial_invoice",
        "payAmounts": {"professionalCharges": 500},
    }
    response = await client.post(f"{BASE}/sample", json=body)
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "A partial invoice covers exactly one job"
    assert response.json()["detail"]["selected"] == 2

    response = await client.post(f"{BASE}", json=body)
    assert response.status_code == 400

    response = await client.get(BASE)
    assert response.json()["total"] == 0


async def test_shift_to_proforma_recomputes_amounts(client, seeded, session_factory):
    response = await client.post(f"{BASE}", json={"jobIds": [seeded["a"]], "discountAmount": 100})
    assert response.status_code == 201
    invoice = response.json()
    # 1500 + 200 + 200 - 100 = 1800, GST 324, reimbursement 200
    assert Decimal(invoice["finalAmount"]) == Decimal("2324")
    assert invoice["proformaViewId"] is None

    # job data changes after the draft was saved
    async with session_factory() as session:
        charge = (
            await session.execute(select(JobServiceCharge).where(JobServiceCharge.job_id == UUID(seeded["a"])))
        ).scalar_one()
        charge.fixed = Decimal("600")
        await session.commit()

    response = await client.put(f"{BASE}/{invoice['id']}", json={"invoiceStageStatus": "Proforma"})
    assert response.status_code == 200
    proforma = response.json()
    assert proforma["invoiceStageStatus"] == "Proforma"
    assert proforma["proformaViewId"] == f"P7{financial_year_pair()}0001"
    assert proforma["proformaCreatedAt"] is not None
    assert proforma["draftViewId"] == invoice["draftViewId"]
    # 1600 + 200 + 200 - 100 = 1900, GST 342, reimbursement 200
    assert Decimal(proforma["professionalCharges"]) == Decimal("1600")
    assert Decimal(proforma["discountAmount"]) == Decimal("100")
    assert Decimal(proforma["cgstAmount"]) == Decimal("171")
    assert Decimal(proforma["finalAmount"]) == Decimal("2442")
    assert Decimal(proforma["payAmount"]) == Decimal("2442")

    # shifting again keeps the proforma id; a new discount replaces the stored one
    response = await client.put(
        f"{BASE}/{invoice['id']}", json={"invoiceStageStatus": "proforma", "discountAmount": 0}
    )
    assert response.status_code == 200
    assert response.json()["proformaViewId"] == proforma["proformaViewId"]
    assert Decimal(response.json()["finalAmount"]) == Decimal("2560")

    response = await client.get(BASE, params={"invoiceStageStatus": "Proforma"})
    assert response.json()["total"] == 1
    response = await client.get(BASE, params={"invoiceStageStatus": "Draft"})
    assert response.json()["total"] == 0


async def test_stage_update_rejections(client, seeded):
    response = await client.put(
        f"{BASE}/00000000-0000-4000-8000-000000000000", json={"invoiceStageStatus": "Proforma"}
    )
    assert response.status_code == 404

    response = await client.post(f"{BASE}", json={"jobIds": [seeded["b"]]})
    invoice_id = response.json()["id"]

    response = await client.put(f"{BASE}/{invoice_id}", json={"invoiceStageStatus": "Draft"})
    assert response.status_code == 400

    response = await client.put(f"{BASE}/{invoice_id}", json={"invoiceStageStatus": "Final"})
    assert response.status_code == 422

    await client.delete(f"{BASE}/{invoice_id}")
    response = await client.put(f"{BASE}/{invoice_id}", json={"invoiceStageStatus": "Proforma"})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Only active invoices can be shifted to Proforma"
