"""Tests for the SQLAlchemy catalog store (SQLite) and the catalog facade."""

from dataclasses import replace
from pathlib import Path

import pytest

from schemaforge.errors import ConcurrentModificationError
from schemaforge.metadata.catalog import CatalogChanges, CatalogStore, MetadataCatalog
from schemaforge.metadata.memory_store import InMemoryCatalogStore
from schemaforge.metadata.models import FieldMetadata
from schemaforge.metadata.sql_store import SQLAlchemyCatalogStore
from schemaforge.persistence.config import DatabaseConfig, create_engine_for

from conftest import WORKSPACE_ID, make_standard_object


@pytest.fixture(params=["sql", "memory"])
def any_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryCatalogStore()
        return
    engine = create_engine_for(DatabaseConfig(url=f"sqlite:///{tmp_path / 'catalog.db'}"))
    yield SQLAlchemyCatalogStore(engine)
    engine.dispose()


def _person():
    return make_standard_object("person", "people", "Person", "People")


def _with_extra_field(obj, name="nickname"):
    extra = FieldMetadata(
        id=f"{obj.id}-{name}",
        object_id=obj.id,
        workspace_id=obj.workspace_id,
        name=name,
        label=name.title(),
        type="TEXT",
    )
    return replace(obj, fields={**obj.fields, extra.id: extra}), extra


class TestCatalogStores:
    def test_satisfies_protocol(self, any_store):
        assert isinstance(any_store, CatalogStore)

    @pytest.mark.asyncio
    async def test_upsert_and_read_back(self, any_store):
        person, extra = _with_extra_field(_person())
        await any_store.apply_changes(WORKSPACE_ID, CatalogChanges(upserts=[person]))

        loaded = await any_store.get_object(WORKSPACE_ID, person.id)
        assert loaded == person
        assert await any_store.get_field(WORKSPACE_ID, extra.id) == extra
        assert [o.id for o in await any_store.load_objects(WORKSPACE_ID)] == [person.id]

    @pytest.mark.asyncio
    async def test_upsert_replaces_field_set(self, any_store):
        person, extra = _with_extra_field(_person())
        await any_store.apply_changes(WORKSPACE_ID, CatalogChanges(upserts=[person]))

        without = replace(person, fields={k: v for k, v in person.fields.items() if k != extra.id})
        await any_store.apply_changes(WORKSPACE_ID, CatalogChanges(upserts=[without]))

        assert await any_store.get_field(WORKSPACE_ID, extra.id) is None
        assert (await any_store.get_object(WORKSPACE_ID, person.id)).fields == without.fields

    @pytest.mark.asyncio
    async def test_delete_ignores_absent_ids(self, any_store):
        person, extra = _with_extra_field(_person())
        await any_store.apply_changes(WORKSPACE_ID, CatalogChanges(upserts=[person]))

        await any_store.apply_changes(
            WORKSPACE_ID,
            CatalogChanges(deleted_field_ids=[extra.id, "never-existed"]),
        )
        await any_store.apply_changes(
            WORKSPACE_ID,
            CatalogChanges(deleted_field_ids=[extra.id], deleted_object_ids=[person.id]),
        )

        assert await any_store.get_object(WORKSPACE_ID, person.id) is None
        assert await any_store.load_objects(WORKSPACE_ID) == []

    @pytest.mark.asyncio
    async def test_expected_version_guards_writes(self, any_store):
        await any_store.increment_version(WORKSPACE_ID)

        with pytest.raises(ConcurrentModificationError):
            await any_store.apply_changes(
                WORKSPACE_ID, CatalogChanges(upserts=[_person()]), expected_version=0
            )
        assert await any_store.load_objects(WORKSPACE_ID) == []

        await any_store.apply_changes(
            WORKSPACE_ID, CatalogChanges(upserts=[_person()]), expected_version=1
        )
        assert len(await any_store.load_objects(WORKSPACE_ID)) == 1

    @pytest.mark.asyncio
    async def test_increment_version_compare_and_set(self, any_store):
        assert await any_store.get_version(WORKSPACE_ID) == 0
        assert await any_store.increment_version(WORKSPACE_ID) == 1
        assert await any_store.increment_version(WORKSPACE_ID, expected=1) == 2
        assert await any_store.increment_version(WORKSPACE_ID, expected=1) is None
        assert await any_store.get_version(WORKSPACE_ID) == 2

    @pytest.mark.asyncio
    async def test_workspaces_are_isolated(self, any_store):
        other = make_standard_object("person", "people", "Person", "People", workspace_id="other")
        await any_store.apply_changes(WORKSPACE_ID, CatalogChanges(upserts=[_person()]))
        await any_store.apply_changes("other", CatalogChanges(upserts=[other]))

        await any_store.delete_workspace(WORKSPACE_ID)

        assert await any_store.load_objects(WORKSPACE_ID) == []
        assert [o.id for o in await any_store.load_objects("other")] == [other.id]


class TestMetadataCatalog:
    @pytest.mark.asyncio
    async def test_find_one_and_many(self):
        catalog = MetadataCatalog(InMemoryCatalogStore())
        person = _person()
        company = make_standard_object("company", "companies", "Company", "Companies")
        await catalog.save(WORKSPACE_ID, CatalogChanges(upserts=[person, company]))

        assert (await catalog.find_one(WORKSPACE_ID, name_singular="person")).id == person.id
        assert await catalog.find_one(WORKSPACE_ID, name_singular="nobody") is None
        assert [o.name_singular for o in await catalog.find_many(WORKSPACE_ID)] == [
            "company",
            "person",
        ]
        assert await catalog.find_many(WORKSPACE_ID, is_custom=True) == []

    @pytest.mark.asyncio
    async def test_delete_many(self):
        catalog = MetadataCatalog(InMemoryCatalogStore())
        person, extra = _with_extra_field(_person())
        await catalog.save(WORKSPACE_ID, CatalogChanges(upserts=[person]))

        await catalog.delete_many(WORKSPACE_ID, field_ids=[extra.id])

        assert await catalog.get_field(WORKSPACE_ID, extra.id) is None
        assert await catalog.get(WORKSPACE_ID, person.id) is not None

    @pytest.mark.asyncio
    async def test_empty_save_is_noop(self):
        store = InMemoryCatalogStore()
        await MetadataCatalog(store).save(WORKSPACE_ID, CatalogChanges(), expected_version=99)
        assert await store.load_objects(WORKSPACE_ID) == []


# =============================================================================
# Configuration
# =============================================================================


class TestDatabaseConfig:
    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://app@db/metadata")
        monkeypatch.setenv("SCHEMAFORGE_DB_PATH", "/tmp/ignored.db")
        config = DatabaseConfig.from_env()
        assert config.sqlalchemy_url == "postgresql+psycopg://app@db/metadata"
        assert config.sqlite_path is None

    def test_db_path(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("SCHEMAFORGE_DB_PATH", "/tmp/catalog.db")
        assert DatabaseConfig.from_env().sqlite_path == Path("/tmp/catalog.db")

    def test_default_file_under_base_path(self, monkeypatch, tmp_path):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("SCHEMAFORGE_DB_PATH", raising=False)
        config = DatabaseConfig.from_env(tmp_path)
        assert config.is_sqlite
        assert config.sqlite_path == tmp_path / "data" / "schemaforge.db"

    def test_in_memory_has_no_path(self):
        assert DatabaseConfig(url="sqlite:///:memory:").sqlite_path is None
        assert DatabaseConfig(url="sqlite://").sqlite_path is None
