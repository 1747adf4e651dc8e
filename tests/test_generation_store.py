"""
Tests for generation bookkeeping SQL against a mocked database.
"""

import json
from unittest.mock import AsyncMock

import pytest

from certforge.errors import NotFoundError
from certforge.schemas.generation import JobStatus, RecipientRecord
from certforge.services.generation_store import GenerationStore, format_certificate_number


def test_certificate_number_format():
    assert format_certificate_number("CERT", 2025, 42) == "CERT-2025-000042"
    assert format_certificate_number("ACME", 2026, 1234567) == "ACME-2026-1234567"


class TestJobs:

    @pytest.mark.asyncio
    async def test_create_job_serializes_options(self):
        database = AsyncMock()
        store = GenerationStore(database)

        job_id = await store.create_job("org-1", "tpl-1", "ver-1", "user-1", JobStatus.RUNNING,
                                        {"options": {"includeQR": True}}, 3)

        query, values = database.execute.await_args.args
        assert "INSERT INTO certificate_generation_jobs" in query
        assert values["id"] == job_id
        assert values["status"] == "running"
        assert json.loads(values["options"]) == {"options": {"includeQR": True}}
        assert values["total_requested"] == 3

    @pytest.mark.asyncio
    async def test_terminal_status_sets_completed_at(self):
        database = AsyncMock()
        await GenerationStore(database).update_job_status(
            "job-1", JobStatus.COMPLETED, total_certificates=2, errors=[{"index": 1, "error": "x"}]
        )

        _, values = database.execute.await_args.args
        assert values["status"] == "completed"
        assert values["completed_at"] is not None
        assert json.loads(values["errors"]) == [{"index": 1, "error": "x"}]

    @pytest.mark.asyncio
    async def test_running_status_has_no_completed_at(self):
        database = AsyncMock()
        await GenerationStore(database).update_job_status("job-1", JobStatus.RUNNING)

        _, values = database.execute.await_args.args
        assert values["completed_at"] is None
        assert values["errors"] is None

    @pytest.mark.asyncio
    async def test_get_missing_job(self):
        database = AsyncMock()
        database.fetch_one.return_value = None
        with pytest.raises(NotFoundError):
            await GenerationStore(database).get_job("job-1")


class TestRecipients:

    @pytest.mark.asyncio
    async def test_insert_recipients_in_one_batch(self):
        database = AsyncMock()
        recipients = [
            RecipientRecord(index=0, name="Ana", row={"Name": "Ana"}),
            RecipientRecord(index=1, name="Bo", email="bo@example.com", row={"Name": "Bo"}),
        ]

        ids = await GenerationStore(database).insert_recipients("job-1", "org-1", recipients)

        assert len(ids) == 2
        database.execute_many.assert_awaited_once()
        _, values = database.execute_many.await_args.args
        assert [v["row_index"] for v in values] == [0, 1]
        assert values[1]["recipient_email"] == "bo@example.com"
        assert json.loads(values[0]["recipient_data"]) == {"Name": "Ana"}

    @pytest.mark.asyncio
    async def test_no_recipients_no_query(self):
        database = AsyncMock()
        assert await GenerationStore(database).insert_recipients("job-1", "org-1", []) == []
        database.execute_many.assert_not_awaited()


class TestCertificateNumbers:

    @pytest.mark.asyncio
    async def test_counter_upsert(self):
        database = AsyncMock()
        database.fetch_val.return_value = 7

        number = await GenerationStore(database, number_prefix="CERT").next_certificate_number("org-1", year=2025)

        assert number == "CERT-2025-000007"
        query, values = database.fetch_val.await_args.args
        assert "ON CONFLICT (organization_id)" in query
        assert "RETURNING last_value" in query
        assert values == {"organization_id": "org-1"}
