"""
Tests for the declarative table definitions.
"""

from certforge.database import Base
import certforge.models  # noqa: F401


def constraint_names(table):
    return {constraint.name for constraint in table.constraints if constraint.name}


def test_all_tables_registered():
    assert set(Base.metadata.tables) >= {
        "files",
        "certificate_templates",
        "certificate_template_versions",
        "certificate_template_fields",
        "certificate_generation_jobs",
        "certificate_generation_recipients",
        "certificate_number_counters",
        "certificates",
    }


def test_certificate_uniqueness():
    table = Base.metadata.tables["certificates"]
    assert {"uq_certificates_org_number", "uq_certificates_token_hash"} <= constraint_names(table)


def test_field_keys_unique_per_version():
    table = Base.metadata.tables["certificate_template_fields"]
    assert {"uq_template_fields_version_key", "ck_template_fields_page_number"} <= constraint_names(table)


def test_job_status_is_constrained():
    table = Base.metadata.tables["certificate_generation_jobs"]
    assert "ck_generation_jobs_status" in constraint_names(table)


def test_counter_keyed_by_organization():
    table = Base.metadata.tables["certificate_number_counters"]
    assert [column.name for column in table.primary_key.columns] == ["organization_id"]
