"""Tests for row-level security: rule resolution, in-memory checks and push-down filters."""

import pytest

from civic_access.core.query_filter import QueryFilter
from civic_access.core.row_level_security import (
    ACADEMIC, CREATOR, MUNICIPALITY, ORGANIZATION, PROVIDER, RowLevelSecurity
)
from civic_access.database.entity_store import EntityStore

from conftest import make_principal

RULED_ENTITIES = ["Challenge", "Pilot", "Solution", "RDProject", "Organization"]

STRANGER_RECORDS = {
    "Challenge": {"id": "c1", "municipality_id": "M9", "created_by": "other@x.com", "stakeholders": []},
    "Pilot": {"id": "p1", "municipality_id": "M9", "created_by": "other@x.com", "team": []},
    "Solution": {"id": "s1", "provider_id": "org9", "created_by": "other@x.com"},
    "RDProject": {"id": "r1", "principal_investigator": {"email": "pi@x.com"}, "team_members": [], "created_by": "other@x.com"},
    "Organization": {"id": "org9", "created_by": "other@x.com"},
}


# ---------------------------------------------------------------------------
# Bypasses
# ---------------------------------------------------------------------------


class TestBypass:
    @pytest.mark.parametrize("entity_type", RULED_ENTITIES)
    def test_admin_sees_every_record(self, entity_type):
        rls = RowLevelSecurity(make_principal(roles=["admin"]))
        assert rls.can_access_entity(entity_type, STRANGER_RECORDS[entity_type]) is True

    @pytest.mark.parametrize("entity_type,token", [
        ("Challenge", "challenge_view_all"),
        ("Pilot", "pilot_view_all"),
        ("Solution", "solution_view_all"),
        ("RDProject", "rd_view_all"),
        ("Organization", "organization_view_all"),
    ])
    def test_view_all_permission_sees_every_record(self, entity_type, token):
        rls = RowLevelSecurity(make_principal(permissions=[token]))
        assert rls.can_access_entity(entity_type, STRANGER_RECORDS[entity_type]) is True

    def test_view_all_is_per_entity_type(self):
        rls = RowLevelSecurity(make_principal(permissions=["pilot_view_all"]))
        assert rls.can_access_entity("Challenge", STRANGER_RECORDS["Challenge"]) is False

    def test_wildcard_permission_bypasses(self):
        rls = RowLevelSecurity(make_principal(permissions=["*"]))
        assert rls.get_entity_query("Solution").is_unrestricted


# ---------------------------------------------------------------------------
# Shape selection
# ---------------------------------------------------------------------------


class TestSelectRule:
    def test_municipality_shape_wins_over_organization(self):
        rls = RowLevelSecurity(make_principal(municipality_id="M1", organization_id="org1"))
        assert rls.select_rule("Challenge")[0] == MUNICIPALITY

    def test_organization_tried_before_provider(self):
        rls = RowLevelSecurity(make_principal(organization_id="org1"))
        assert rls.select_rule("Challenge")[0] == ORGANIZATION
        assert rls.select_rule("Pilot")[0] == PROVIDER

    def test_shape_without_rule_moves_on(self):
        rls = RowLevelSecurity(make_principal(municipality_id="M1", organization_id="org1"))
        assert rls.select_rule("Solution")[0] == PROVIDER

    def test_academic_by_expertise(self):
        rls = RowLevelSecurity(make_principal(areas_of_expertise=["mobility"]))
        assert rls.select_rule("RDProject")[0] == ACADEMIC

    def test_no_shape_falls_back_to_creator(self):
        rls = RowLevelSecurity(make_principal())
        assert rls.select_rule("Challenge")[0] == CREATOR


# ---------------------------------------------------------------------------
# Entity rules
# ---------------------------------------------------------------------------


class TestChallengeRules:
    def test_same_municipality_visible(self):
        rls = RowLevelSecurity(make_principal(municipality_id="M1"))
        assert rls.can_access_entity("Challenge", {"municipality_id": "M1", "created_by": "o@x.com"}) is True

    def test_other_municipality_hidden(self):
        rls = RowLevelSecurity(make_principal(municipality_id="M2"))
        assert rls.can_access_entity("Challenge", {"municipality_id": "M1", "created_by": "o@x.com"}) is False

    def test_city_id_is_alternate_key(self):
        rls = RowLevelSecurity(make_principal(municipality_id="M1"))
        assert rls.can_access_entity("Challenge", {"city_id": "M1"}) is True

    def test_organization_user_as_stakeholder(self):
        rls = RowLevelSecurity(make_principal(organization_id="org1"))
        record = {"created_by": "o@x.com", "stakeholders": [{"email": "u@x.com", "role": "sponsor"}]}
        assert rls.can_access_entity("Challenge", record) is True

    def test_organization_user_not_listed(self):
        rls = RowLevelSecurity(make_principal(organization_id="org1"))
        record = {"created_by": "o@x.com", "stakeholders": [{"email": "z@x.com"}]}
        assert rls.can_access_entity("Challenge", record) is False

    def test_no_shape_and_not_creator_denied(self):
        rls = RowLevelSecurity(make_principal())
        record = {"created_by": "o@x.com", "stakeholders": [{"email": "z@x.com"}]}
        assert rls.can_access_entity("Challenge", record) is False

    def test_no_shape_creator_allowed(self):
        rls = RowLevelSecurity(make_principal())
        assert rls.can_access_entity("Challenge", {"created_by": "u@x.com"}) is True


class TestPilotRules:
    def test_team_member_without_matching_organization(self):
        rls = RowLevelSecurity(make_principal(email="a@x.com", organization_id="org7"))
        record = {"created_by": "o@x.com", "organization_id": "org1", "team": [{"email": "a@x.com"}]}
        assert rls.can_access_entity("Pilot", record) is True

    def test_team_seat_needs_provider_shape(self):
        rls = RowLevelSecurity(make_principal(email="a@x.com"))
        record = {"created_by": "o@x.com", "team": [{"email": "a@x.com"}]}
        assert rls.can_access_entity("Pilot", record) is False

    def test_team_as_json_string(self):
        rls = RowLevelSecurity(make_principal(email="a@x.com", organization_id="org7"))
        assert rls.can_access_entity("Pilot", {"team": '[{"email": "a@x.com"}]'}) is True

    def test_municipality_staff(self):
        rls = RowLevelSecurity(make_principal(municipality_id="M1"))
        assert rls.can_access_entity("Pilot", {"municipality_id": "M1"}) is True


class TestSolutionRules:
    def test_provider_match_ignores_creator(self):
        rls = RowLevelSecurity(make_principal(email="u@x.com", organization_id="org1"))
        assert rls.can_access_entity("Solution", {"provider_id": "org1", "created_by": "other@x.com"}) is True

    def test_creator_match_inside_provider_rule(self):
        rls = RowLevelSecurity(make_principal(email="u@x.com", organization_id="org1"))
        assert rls.can_access_entity("Solution", {"provider_id": "org2", "created_by": "u@x.com"}) is True

    def test_other_provider_hidden(self):
        rls = RowLevelSecurity(make_principal(email="u@x.com", organization_id="org1"))
        assert rls.can_access_entity("Solution", {"provider_id": "org2", "created_by": "o@x.com"}) is False


class TestRDProjectRules:
    @pytest.fixture
    def rls(self):
        return RowLevelSecurity(make_principal(email="r@uni.edu", institution_id="inst1"))

    def test_principal_investigator(self, rls):
        assert rls.can_access_entity("RDProject", {"principal_investigator": {"email": "r@uni.edu"}}) is True

    def test_team_member(self, rls):
        assert rls.can_access_entity("RDProject", {"team_members": [{"email": "r@uni.edu"}]}) is True

    def test_unrelated_project(self, rls):
        record = {"principal_investigator": {"email": "pi@uni.edu"}, "team_members": [], "created_by": "pi@uni.edu"}
        assert rls.can_access_entity("RDProject", record) is False


class TestOrganizationRules:
    def test_own_organization_only(self):
        rls = RowLevelSecurity(make_principal(organization_id="org1"))
        assert rls.can_access_entity("Organization", {"id": "org1"}) is True
        assert rls.can_access_entity("Organization", {"id": "org2", "is_partner": True}) is False


# ---------------------------------------------------------------------------
# Defaults and edge cases
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_unregistered_entity_open_to_anyone(self):
        assert RowLevelSecurity(make_principal()).can_access_entity("Program", {"id": "x"}) is True
        assert RowLevelSecurity(None).can_access_entity("Program", {"id": "x"}) is True

    def test_anonymous_denied_on_ruled_entities(self):
        rls = RowLevelSecurity(None)
        for entity_type in RULED_ENTITIES:
            assert rls.can_access_entity(entity_type, STRANGER_RECORDS[entity_type]) is False
            assert rls.get_entity_query(entity_type).is_empty

    def test_none_record_denied(self):
        assert RowLevelSecurity(make_principal(roles=["admin"])).can_access_entity("Challenge", None) is False

    def test_blank_scope_values_never_match(self):
        rls = RowLevelSecurity(make_principal(email=""))
        assert rls.get_entity_query("Challenge").is_empty
        assert rls.can_access_entity("Challenge", {"created_by": ""}) is False

    def test_table_name_resolves(self):
        rls = RowLevelSecurity(make_principal(municipality_id="M1"))
        assert rls.can_access_entity("challenges", {"municipality_id": "M1"}) is True

    def test_filter_entities(self):
        rls = RowLevelSecurity(make_principal(municipality_id="M1"))
        records = [{"id": "a", "municipality_id": "M1"}, {"id": "b", "municipality_id": "M2"}]
        assert [r["id"] for r in rls.filter_entities("Challenge", records)] == ["a"]


# ---------------------------------------------------------------------------
# Push-down
# ---------------------------------------------------------------------------


class TestPushDown:
    def test_municipality_or_expression(self):
        query = RowLevelSecurity(make_principal(municipality_id="M1")).get_entity_query("Challenge")
        assert query.or_expression() == 'municipality_id.eq."M1",city_id.eq."M1"'

    def test_nested_path_and_containment(self):
        query = RowLevelSecurity(make_principal(email="r@uni.edu", institution_id="i")).get_entity_query("RDProject")
        assert query.or_expression() == (
            'principal_investigator->>email.eq."r@uni.edu",'
            'team_members.cs."[{\\"email\\":\\"r@uni.edu\\"}]",'
            'created_by.eq."r@uni.edu"'
        )

    def test_apply_rls_keeps_base_terms(self):
        rls = RowLevelSecurity(make_principal(municipality_id="M1"))
        combined = rls.apply_rls("Challenge", QueryFilter.where(status="open"))
        assert [c.field for c in combined.all_of] == ["status"]
        assert len(combined.any_of) == 2
        assert combined.matches({"status": "open", "city_id": "M1"}) is True
        assert combined.matches({"status": "closed", "city_id": "M1"}) is False

    @pytest.mark.parametrize("principal_kwargs", [
        {"municipality_id": "M1"},
        {"organization_id": "org1"},
        {"email": "a@x.com", "organization_id": "org1"},
        {"email": "r@uni.edu", "areas_of_expertise": ["ai"]},
        {},
    ])
    def test_store_push_down_agrees_with_memory(self, fake_supabase, principal_kwargs):
        records = {
            "challenges": [
                {"id": "c1", "municipality_id": "M1", "created_by": "x@x.com"},
                {"id": "c2", "city_id": "M1", "created_by": "x@x.com"},
                {"id": "c3", "created_by": "u@x.com", "stakeholders": []},
                {"id": "c4", "created_by": "x@x.com", "stakeholders": [{"email": "u@x.com"}]},
            ],
            "pilots": [
                {"id": "p1", "team": [{"email": "a@x.com"}], "created_by": "x@x.com"},
                {"id": "p2", "municipality_id": "M1", "team": [], "created_by": "x@x.com"},
            ],
            "rd_projects": [
                {"id": "r1", "principal_investigator": {"email": "r@uni.edu"}, "team_members": []},
                {"id": "r2", "principal_investigator": {"email": "x@uni.edu"}, "team_members": [{"email": "r@uni.edu"}]},
                {"id": "r3", "principal_investigator": {"email": "x@uni.edu"}, "team_members": []},
            ],
        }
        for table, rows in records.items():
            fake_supabase.seed(table, *rows)
        store = EntityStore(fake_supabase)
        rls = RowLevelSecurity(make_principal(**principal_kwargs))

        for entity_type in ("Challenge", "Pilot", "RDProject"):
            pushed = {r["id"] for r in store.list(entity_type, rls.apply_rls(entity_type))}
            in_memory = {r["id"] for r in rls.filter_entities(entity_type, store.list(entity_type))}
            assert pushed == in_memory, entity_type

    def test_denied_scope_skips_the_store(self, fake_supabase):
        store = EntityStore(fake_supabase)
        assert store.list("Challenge", RowLevelSecurity(None).get_entity_query("Challenge")) == []
        assert fake_supabase.calls == []
