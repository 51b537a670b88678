"""Unit tests for profile storage, inheritance and application."""

import json
from pathlib import Path

import pytest

from envx.errors import AlreadyExistsError, CyclicProfileError, NotFoundError, ParseError
from envx.models import VarSource
from envx.profiles import ProfileStore


@pytest.fixture
def profiles(tmp_path: Path) -> ProfileStore:
    return ProfileStore(tmp_path / "profiles.json")


class TestCrud:
    def test_create_persists_immediately(self, profiles: ProfileStore):
        """
        Given an empty profile store
        When a profile is created with a variable
        Then a fresh store reading the same file sees both
        """
        profiles.create("dev", description="local")
        profiles.add_var("dev", "DEBUG", "1")

        reloaded = ProfileStore(profiles.path)

        assert reloaded.get("dev").description == "local"
        assert reloaded.get("dev").active_vars() == {"DEBUG": "1"}

    def test_default_path_is_under_home(self, envx_home: Path):
        """
        Given ENVX_HOME
        When a profile is created without an explicit path
        Then profiles.json appears in the home directory
        """
        ProfileStore().create("x")
        assert json.loads((envx_home / "profiles.json").read_text())["profiles"]["x"]["name"] == "x"

    def test_duplicate_and_missing(self, profiles: ProfileStore):
        """
        Given a profile dev
        When creating dev again, reading a missing profile, or using a missing parent
        Then AlreadyExists and NotFound are raised
        """
        profiles.create("dev")

        with pytest.raises(AlreadyExistsError):
            profiles.create("dev")
        with pytest.raises(NotFoundError):
            profiles.get("prod")
        with pytest.raises(NotFoundError):
            profiles.create("child", parent="ghost")

    def test_delete_clears_active(self, profiles: ProfileStore):
        """
        Given an active profile
        When it is deleted
        Then no profile is active any more
        """
        profiles.create("dev")
        profiles.switch("dev")
        assert profiles.active_name == "dev"

        profiles.delete("dev")

        assert profiles.active() is None
        assert profiles.list_profiles() == []

    def test_remove_and_disable_variables(self, profiles: ProfileStore):
        """
        Given a profile with A and B
        When B is disabled and A removed
        Then no active variables remain and removing A again fails
        """
        profiles.create("dev")
        profiles.add_var("dev", "A", "1")
        profiles.add_var("dev", "B", "2")

        profiles.set_enabled("dev", "B", False)
        profiles.remove_var("dev", "A")

        assert profiles.get("dev").active_vars() == {}
        with pytest.raises(NotFoundError):
            profiles.remove_var("dev", "A")

    def test_malformed_file(self, tmp_path: Path):
        """
        Given a profiles.json that does not match the schema
        When it is loaded
        Then ParseError is raised
        """
        path = tmp_path / "profiles.json"
        path.write_text('{"profiles": {"x": {"variables": 5}}}')

        with pytest.raises(ParseError):
            ProfileStore(path)


class TestInheritance:
    def test_scenario_child_overrides_parent(self, profiles: ProfileStore, store, backend):
        """
        Given dev {X: v1} and web (parent dev) {Y: v2, X: v3}
        When web is applied
        Then X is v3, Y is v2, and both were persisted
        """
        profiles.create("dev")
        profiles.add_var("dev", "X", "v1")
        profiles.create("web", parent="dev")
        profiles.add_var("web", "Y", "v2")
        profiles.add_var("web", "X", "v3")

        count = profiles.apply("web", store)

        assert count == 3
        assert store.get("X").value == "v3"
        assert store.get("Y").value == "v2"
        assert store.get("X").source is VarSource.USER
        assert backend.user == {"X": "v3", "Y": "v2"}

    def test_resolve_chain_root_first(self, profiles: ProfileStore):
        """
        Given base <- mid <- leaf
        When the chain of leaf is resolved
        Then it lists base, mid, leaf
        """
        profiles.create("base")
        profiles.create("mid", parent="base")
        profiles.create("leaf", parent="mid")

        assert [p.name for p in profiles.resolve_chain("leaf")] == ["base", "mid", "leaf"]

    def test_set_parent_refuses_cycles(self, profiles: ProfileStore):
        """
        Given b inherits from a
        When a is pointed at b
        Then CyclicProfileError is raised and a keeps no parent
        """
        profiles.create("a")
        profiles.create("b", parent="a")

        with pytest.raises(CyclicProfileError) as info:
            profiles.set_parent("a", "b")

        assert info.value.chain == ["a", "b", "a"]
        assert profiles.get("a").parent is None

    def test_resolve_chain_detects_cycle_on_disk(self, profiles: ProfileStore, store):
        """
        Given a document edited by hand so that a and b are each other's parent
        When a is applied
        Then CyclicProfileError is raised before anything is set
        """
        profiles.create("a")
        profiles.create("b", parent="a")
        profiles.get("a").parent = "b"
        profiles.add_var("a", "X", "1")

        with pytest.raises(CyclicProfileError):
            profiles.apply("a", store)
        assert store.get("X") is None


class TestExportImport:
    def test_round_trip_under_new_name(self, profiles: ProfileStore):
        """
        Given dev with a variable
        When exported and imported as staging
        Then staging has the same variables and its own name
        """
        profiles.create("dev", description="d")
        profiles.add_var("dev", "A", "1", override_system=True)

        imported = profiles.import_profile(profiles.export("dev"), "staging")

        assert imported.name == "staging"
        assert imported.variables["A"].override_system is True
        assert ProfileStore(profiles.path).get("staging").active_vars() == {"A": "1"}

    def test_import_conflict_and_overwrite(self, profiles: ProfileStore):
        """
        Given an existing profile
        When importing under its name
        Then it fails unless overwrite is set
        """
        profiles.create("dev")
        text = json.dumps({"name": "other", "variables": {"B": {"value": "2"}}})

        with pytest.raises(AlreadyExistsError):
            profiles.import_profile(text, "dev")

        profiles.import_profile(text, "dev", overwrite=True)
        assert profiles.get("dev").active_vars() == {"B": "2"}

    def test_import_garbage(self, profiles: ProfileStore):
        """
        Given text that is not a profile
        When imported
        Then ParseError is raised
        """
        with pytest.raises(ParseError):
            profiles.import_profile("not json", "x")
