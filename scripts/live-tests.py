#!/usr/bin/env python3
"""Live smoke suite for the MediConnect Visa API.

Exercises the admin-visible REST surface, RFC 7807 error bodies, and the
audit chain against a running server instance.

Prerequisites:
  - API server running on localhost:8000 with AUTH_DISABLED=true
    (requests then act as the dev admin)
  - Registry seeded (python -m mediconnect_api.seed)
  - MinIO reachable by the server for the upload section

Usage:
  ./scripts/live-tests.py                      # full suite
  ./scripts/live-tests.py --section registry   # one section
  ./scripts/live-tests.py --base http://host:8000
"""

import argparse
import asyncio
import sys
import uuid

import httpx

BASE = "http://localhost:8000"

# ---------------------------------------------------------------------------
# Test runner
# ---------------------------------------------------------------------------

PASS = 0
FAIL = 0
ERRORS: list[str] = []
SECTION = ""


def section(name: str):
    global SECTION
    SECTION = name
    print(f"\n{'=' * 60}")
    print(f"  {name}")
    print(f"{'=' * 60}\n")


def ok(name: str, passed: bool, detail: str = ""):
    global PASS, FAIL
    if passed:
        PASS += 1
        print(f"  PASS  {name}")
    else:
        FAIL += 1
        msg = f"[{SECTION}] {name}: {detail}" if detail else f"[{SECTION}] {name}"
        ERRORS.append(msg)
        print(f"  FAIL  {name} -- {detail}")


def has_keys(d: dict, *keys: str) -> bool:
    return all(k in d for k in keys)


def is_problem(r: httpx.Response, status: int, kind: str | None = None) -> bool:
    if r.status_code != status:
        return False
    body = r.json()
    if not has_keys(body, "type", "title", "status", "detail", "request_id"):
        return False
    return kind is None or body["type"] == f"/errors/{kind}"


# ---------------------------------------------------------------------------
# 1. Health
# ---------------------------------------------------------------------------

async def test_health(c: httpx.AsyncClient):
    section("Health")

    r = await c.get("/health/")
    ok("GET /health/ returns 200", r.status_code == 200)
    data = r.json()
    ok("health has status and database", has_keys(data, "status", "database"))
    ok("database reachable", data.get("database") is True, str(data))

    r = await c.get("/")
    ok("GET / root returns 200", r.status_code == 200)
    ok("root has welcome message", "message" in r.json())


# ---------------------------------------------------------------------------
# 2. Country requirement registry
# ---------------------------------------------------------------------------

async def test_registry(c: httpx.AsyncClient):
    section("Country requirement registry")

    r = await c.get("/api/visa-requirements/")
    ok("GET registry returns 200", r.status_code == 200)
    rows = r.json().get("data", [])
    ok("seeded registry is non-empty", len(rows) > 0, "run python -m mediconnect_api.seed")
    ok("every row is active", all(row.get("is_active") for row in rows))

    r = await c.get("/api/visa-requirements/us")
    ok("lowercase code resolves", r.status_code == 200)
    if r.status_code == 200:
        ok("US requires a passport", "passport" in r.json()["required_documents"])

    # Throwaway two-letter code that no starter row uses
    code = "Q" + uuid.uuid4().hex[0].upper()
    r = await c.post(
        "/api/visa-requirements/",
        json={
            "country_code": code,
            "country_name": f"Smoke {code}",
            "required_documents": ["passport"],
            "fees_usd": "10.00",
        },
    )
    if r.status_code == 409:
        ok("create skipped, code already active", True)
        return
    ok("POST registry returns 201", r.status_code == 201, r.text[:200])
    created = r.json()

    r = await c.post(
        "/api/visa-requirements/",
        json={"country_code": code, "country_name": f"Smoke {code}"},
    )
    ok("duplicate active code is 409 conflict", is_problem(r, 409, "conflict"))

    r = await c.patch(
        f"/api/visa-requirements/{created['id']}",
        json={"required_documents": ["passport", "travel_insurance"]},
    )
    ok("PATCH registry returns 200", r.status_code == 200)
    ok("update applied", r.json().get("required_documents") == ["passport", "travel_insurance"])

    r = await c.patch(
        f"/api/visa-requirements/{created['id']}", json={"required_documents": ["selfie"]},
    )
    ok("unknown tag is 422 validation", is_problem(r, 422, "validation"))

    r = await c.delete(f"/api/visa-requirements/{created['id']}")
    ok("DELETE deactivates", r.status_code == 200 and r.json().get("is_active") is False)

    r = await c.get(f"/api/visa-requirements/{code}")
    ok("deactivated code is 404", is_problem(r, 404, "not-found"))


# ---------------------------------------------------------------------------
# 3. Applications and documents (admin view)
# ---------------------------------------------------------------------------

async def test_applications(c: httpx.AsyncClient):
    section("Applications")

    r = await c.get("/api/visa-applications/", params={"limit": 5})
    ok("GET applications returns 200", r.status_code == 200)
    body = r.json()
    ok("list has pagination", has_keys(body.get("pagination", {}), "total", "offset", "limit", "has_more"))

    r = await c.get("/api/visa-applications/", params={"limit": 500})
    ok("oversized limit is 422", is_problem(r, 422, "validation"))

    r = await c.get("/api/visa-applications/", params={"filter_stage": "rejected"})
    ok("stage filter accepted", r.status_code == 200)
    ok(
        "stage filter honoured",
        all(a["workflow_stage"] == "rejected" for a in r.json().get("data", [])),
    )

    r = await c.post(
        "/api/visa-applications/",
        json={"country_of_origin": "US", "passport_number": "X1", "passport_expiry": "2035-01-01"},
    )
    ok("admin cannot submit as patient (403)", is_problem(r, 403))

    apps = body.get("data", [])
    if not apps:
        ok("no applications yet, detail checks skipped", True)
        return
    app_id = apps[0]["id"]

    r = await c.get(f"/api/visa-applications/{app_id}/checklist")
    ok("checklist returns 200", r.status_code == 200)
    ok("checklist has counts", has_keys(r.json(), "is_complete", "missing", "required_count"))

    r = await c.get(f"/api/visa-applications/{app_id}/workflow-log")
    ok("workflow log returns 200", r.status_code == 200)
    entries = r.json().get("entries", [])
    ok("log starts at documents_uploaded", bool(entries) and entries[0]["stage"] == "documents_uploaded")

    r = await c.get(f"/api/visa-applications/{app_id}/progress")
    ok("progress returns 200", r.status_code == 200)
    ok("progress has six steps", r.json().get("total_steps") == 6)

    r = await c.get(f"/api/visa-applications/{app_id}/letter")
    ok("letter view returns 200", r.status_code == 200)


async def test_documents(c: httpx.AsyncClient):
    section("Documents")

    owner = f"smoke-patient-{uuid.uuid4().hex[:8]}"
    r = await c.post(
        "/api/documents/",
        data={"document_type": "passport", "owner_id": owner},
        files={"file": ("passport.pdf", b"%PDF-1.7 smoke", "application/pdf")},
    )
    ok("admin upload on behalf returns 201", r.status_code == 201, r.text[:200])
    if r.status_code != 201:
        return
    doc = r.json()
    ok("document owned by target patient", doc.get("user_id") == owner)
    ok("document starts pending", doc.get("verification_status") == "pending")

    r = await c.get(f"/api/documents/{doc['id']}/content")
    ok("content round-trips", r.status_code == 200 and r.content == b"%PDF-1.7 smoke", r.text[:200])

    r = await c.patch(
        f"/api/documents/{doc['id']}/verification", json={"verification_status": "verified"},
    )
    ok("admin verifies document", r.status_code == 200 and r.json()["verification_status"] == "verified")

    r = await c.post(
        "/api/documents/",
        data={"document_type": "visa_invitation_letter", "owner_id": owner},
        files={"file": ("letter.pdf", b"%PDF", "application/pdf")},
    )
    ok("letter upload rejected", is_problem(r, 422, "validation"))

    r = await c.post(
        "/api/documents/",
        data={"document_type": "passport", "owner_id": owner},
        files={"file": ("passport.zip", b"PK", "application/zip")},
    )
    ok("unsupported content type rejected", is_problem(r, 422, "validation"))


# ---------------------------------------------------------------------------
# 4. Errors and audit
# ---------------------------------------------------------------------------

async def test_error_handling(c: httpx.AsyncClient):
    section("Error handling")

    r = await c.get("/api/visa-applications/999999999")
    ok("unknown application is 404 not-found", is_problem(r, 404, "not-found"))
    ok("instance is the request path", r.json().get("instance") == "/api/visa-applications/999999999")

    r = await c.get("/api/visa-applications/999999999", headers={"X-Request-ID": "smoke-req-1"})
    ok("request id echoed", r.json().get("request_id") == "smoke-req-1")

    r = await c.post(
        "/api/visa-applications/999999999/advance", json={"target_stage": "teleported"},
    )
    ok("bad target stage is 422", is_problem(r, 422, "validation"))

    r = await c.post("/api/visa-applications/999999999/reject", json={"reason": "  "})
    ok("blank rejection reason is 422", is_problem(r, 422, "validation"))


async def test_audit(c: httpx.AsyncClient):
    section("Audit")

    r = await c.get("/api/audit/verify")
    ok("GET /api/audit/verify returns 200", r.status_code == 200)
    body = r.json()
    ok("audit chain intact", body.get("status") == "OK", str(body))
    ok("events were checked", body.get("events_checked", 0) > 0)

    r = await c.get("/api/audit/events", params={"event_type": "document_verified", "limit": 5})
    ok("GET /api/audit/events returns 200", r.status_code == 200)
    ok("events filtered by type", all(e["event_type"] == "document_verified" for e in r.json().get("events", [])))


async def test_openapi(c: httpx.AsyncClient):
    section("OpenAPI")

    r = await c.get("/openapi.json")
    ok("openapi.json returns 200", r.status_code == 200)
    paths = r.json().get("paths", {})
    for path in (
        "/api/visa-applications/{application_id}/advance",
        "/api/visa-applications/{application_id}/letter/verify",
        "/api/visa-requirements/",
        "/api/documents/",
    ):
        ok(f"documents {path}", path in paths)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

SECTIONS = {
    "health": test_health,
    "registry": test_registry,
    "applications": test_applications,
    "documents": test_documents,
    "errors": test_error_handling,
    "audit": test_audit,
    "openapi": test_openapi,
}


async def main():
    parser = argparse.ArgumentParser(description="Live smoke suite for the MediConnect Visa API")
    parser.add_argument("--base", default=BASE, help="Server base URL")
    parser.add_argument(
        "--section", choices=[*SECTIONS, "all"], default="all", help="Which section to run",
    )
    args = parser.parse_args()

    print("=" * 60)
    print("  LIVE TEST SUITE -- MediConnect Visa API")
    print("=" * 60)

    async with httpx.AsyncClient(base_url=args.base, timeout=15) as c:

        # Pre-flight: make sure server is up
        try:
            r = await c.get("/health/")
            if r.status_code != 200:
                print(f"\n  Server returned {r.status_code} on /health/ -- is it running?")
                sys.exit(2)
        except httpx.ConnectError:
            print(f"\n  Cannot connect to server at {args.base} -- is it running?")
            sys.exit(2)

        for name, run in SECTIONS.items():
            if args.section in (name, "all"):
                await run(c)

    # Summary
    print(f"\n{'=' * 60}")
    print(f"  RESULTS: {PASS} passed, {FAIL} failed")
    print(f"{'=' * 60}")

    if ERRORS:
        print("\nFailures:")
        for e in ERRORS:
            print(f"  - {e}")

    sys.exit(0 if FAIL == 0 else 1)


if __name__ == "__main__":
    asyncio.run(main())
