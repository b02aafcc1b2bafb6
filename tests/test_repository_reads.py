"""
Tests for repository read operations.

Covers:
- Tracking and no-tracking views
- Predicate lookups and not-found results
- Include paths (eager loading)
- Lazy, restartable result sequences
"""

import pytest
from sqlalchemy import inspect
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import DetachedInstanceError

from catalog_data.models import Ban, Fuel, Media
from catalog_data.persistence.context import EntityState
from catalog_data.repositories.sqlalchemy_repository import QueryView


class TestGetAll:
    """Test full-collection views."""

    def test_get_all_returns_every_entity(self, fuel_repo, seeded_fuels):
        names = sorted(fuel.name for fuel in fuel_repo.get_all())
        assert names == ["Diesel", "Electric", "Petrol"]

    def test_get_all_is_query_view(self, fuel_repo):
        view = fuel_repo.get_all()
        assert isinstance(view, QueryView)
        assert view.tracking is True

    def test_get_all_composes(self, fuel_repo, seeded_fuels):
        view = fuel_repo.get_all().where(Fuel.name != "Petrol").order_by(Fuel.name)
        assert [fuel.name for fuel in view] == ["Diesel", "Electric"]
        assert view.count() == 2

    def test_get_all_on_empty_store(self, fuel_repo):
        assert fuel_repo.get_all().all() == []
        assert fuel_repo.get_all().first() is None
        assert fuel_repo.get_all().count() == 0

    def test_limit_and_offset(self, fuel_repo, seeded_fuels):
        view = fuel_repo.get_all().order_by(Fuel.id).offset(1).limit(1)
        assert [fuel.name for fuel in view] == ["Petrol"]


class TestGetAllNoTracking:
    """Test no-tracking reads."""

    def test_results_are_detached(self, fuel_repo, seeded_fuels):
        fuels = fuel_repo.get_all_no_tracking().all()

        assert len(fuels) == 3
        assert all(inspect(fuel).detached for fuel in fuels)

    def test_repeated_reads_are_equal(self, fuel_repo, context, seeded_fuels):
        first = [f.to_dict() for f in fuel_repo.get_all_no_tracking().order_by(Fuel.id)]
        second = [f.to_dict() for f in fuel_repo.get_all_no_tracking().order_by(Fuel.id)]

        assert first == second
        assert context.entries() == []
        assert fuel_repo.commit() == 0

    def test_mutations_never_reach_commit(self, fuel_repo, seeded_fuels):
        for fuel in fuel_repo.get_all_no_tracking():
            fuel.name = fuel.name.upper()

        assert fuel_repo.commit() == 0
        names = sorted(f.name for f in fuel_repo.get_all_no_tracking())
        assert names == ["Diesel", "Electric", "Petrol"]

    def test_returns_fresh_instances(self, fuel_repo, seeded_fuels):
        diesel = seeded_fuels[0]
        copy = fuel_repo.get_all_no_tracking().where(Fuel.id == diesel.id).first()

        assert copy is not diesel
        assert copy.to_dict() == diesel.to_dict()

    def test_include_on_no_tracking_view(self, ban_repo, context, ban_with_media):
        context.session.expunge_all()

        ban = ban_repo.get_all_no_tracking().include(Ban.media).first()

        assert inspect(ban).detached
        assert sorted(m.file_name for m in ban.media) == ["front.png", "side.jpg"]


class TestAny:
    """Test existence checks."""

    def test_any_true(self, fuel_repo, seeded_fuels):
        assert fuel_repo.any(Fuel.name == "Diesel") is True

    def test_any_false(self, fuel_repo, seeded_fuels):
        assert fuel_repo.any(Fuel.name == "Hydrogen") is False

    def test_any_on_empty_store(self, fuel_repo):
        assert fuel_repo.any(Fuel.id > 0) is False

    def test_any_does_not_track(self, fuel_repo, context, seeded_fuels):
        context.session.expunge_all()
        fuel_repo.any(Fuel.name == "Diesel")
        assert len(context.session.identity_map) == 0


class TestGet:
    """Test single-entity lookups."""

    def test_get_by_predicate(self, fuel_repo, seeded_fuels):
        fuel = fuel_repo.get(Fuel.name == "Petrol")
        assert fuel is not None
        assert fuel.name == "Petrol"

    def test_get_not_found_returns_none(self, fuel_repo, seeded_fuels):
        assert fuel_repo.get(Fuel.name == "Hydrogen") is None

    def test_get_by_id(self, fuel_repo, seeded_fuels):
        diesel = seeded_fuels[0]
        assert fuel_repo.get_by_id(diesel.id) is diesel

    def test_get_by_id_missing(self, fuel_repo, seeded_fuels):
        assert fuel_repo.get_by_id(9999) is None

    def test_get_result_is_tracked(self, fuel_repo, context, seeded_fuels):
        context.session.expunge_all()
        fuel = fuel_repo.get(Fuel.name == "Diesel")

        assert context.state_of(fuel) == EntityState.UNCHANGED
        fuel.name = "Biodiesel"
        assert context.state_of(fuel) == EntityState.MODIFIED

    def test_get_with_include_loads_relationship(self, ban_repo, context, ban_with_media):
        ban_id = ban_with_media.id
        context.session.expunge_all()

        ban = ban_repo.get(Ban.id == ban_id, Ban.media)
        context.session.expunge(ban)

        assert len(ban.media) == 2

    def test_get_without_include_leaves_relationship_unloaded(
        self, ban_repo, context, ban_with_media
    ):
        ban_id = ban_with_media.id
        context.session.expunge_all()

        ban = ban_repo.get(Ban.id == ban_id)
        context.session.expunge(ban)

        with pytest.raises(DetachedInstanceError):
            len(ban.media)

    def test_include_by_name(self, ban_repo, context, ban_with_media):
        ban_id = ban_with_media.id
        context.session.expunge_all()

        ban = ban_repo.get(Ban.id == ban_id, "media")
        context.session.expunge(ban)

        assert len(ban.media) == 2

    def test_include_loader_option_chain(self, media_repo, context, ban_with_media):
        context.session.expunge_all()

        media = media_repo.get(
            Media.file_name == "front.png",
            selectinload(Media.ban).selectinload(Ban.media),
        )
        context.session.expunge_all()

        assert media.ban.name == "Sedan"
        assert len(media.ban.media) == 2

    @pytest.mark.asyncio
    async def test_get_async(self, fuel_repo, seeded_fuels):
        fuel = await fuel_repo.get_async(Fuel.name == "Electric")
        assert fuel.name == "Electric"

    @pytest.mark.asyncio
    async def test_get_async_not_found(self, fuel_repo, seeded_fuels):
        assert await fuel_repo.get_async(Fuel.name == "Hydrogen") is None

    @pytest.mark.asyncio
    async def test_get_by_id_async(self, fuel_repo, seeded_fuels):
        petrol = seeded_fuels[1]
        fuel = await fuel_repo.get_by_id_async(petrol.id)
        assert fuel is petrol


class TestGetMany:
    """Test lazy multi-entity lookups."""

    def test_get_many_filters(self, fuel_repo, seeded_fuels):
        names = sorted(f.name for f in fuel_repo.get_many(Fuel.name.like("%e%")))
        assert names == ["Diesel", "Electric", "Petrol"]

        names = sorted(f.name for f in fuel_repo.get_many(Fuel.name.like("P%")))
        assert names == ["Petrol"]

    def test_get_many_no_match_is_empty(self, fuel_repo, seeded_fuels):
        assert list(fuel_repo.get_many(Fuel.name == "Hydrogen")) == []

    def test_get_many_is_restartable(self, fuel_repo, seeded_fuels):
        view = fuel_repo.get_many(Fuel.name.like("D%"))

        assert len(list(view)) == 1
        assert len(list(view)) == 1

    def test_get_many_requeries_on_each_iteration(self, fuel_repo, seeded_fuels):
        view = fuel_repo.get_many(Fuel.name.like("Bio%"))
        assert list(view) == []

        fuel_repo.insert(Fuel(name="Biofuel"))

        assert [f.name for f in view] == ["Biofuel"]

    def test_get_many_with_include(self, ban_repo, context, ban_with_media):
        ban_repo.insert(Ban(name="Coupe"))
        context.session.expunge_all()

        bans = ban_repo.get_many(Ban.name.in_(["Sedan", "Coupe"]), Ban.media).all()
        context.session.expunge_all()

        media_counts = {ban.name: len(ban.media) for ban in bans}
        assert media_counts == {"Sedan": 2, "Coupe": 0}
