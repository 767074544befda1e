import pytest

from diocese_backend.permissions.roles import (
    ExternalRole,
    InternalRole,
    check_external_user_access,
    external_role_from_code,
    internal_role_from_code,
    map_external_role,
    role_should_have_access,
)


class TestRoleMapping:
    """Reduction of the upstream roles onto the three internal roles."""

    @pytest.mark.parametrize("external,expected", [
        ("Ark Admin", InternalRole.SUPER_ADMIN),
        ("Diocese Executive", InternalRole.DIOCESE_MANAGER),
        ("Diocese Admin", InternalRole.DIOCESE_MANAGER),
        ("Center Admin", InternalRole.SCHOOL_MANAGER),
        ("Center Data Admin", InternalRole.SCHOOL_MANAGER),
        ("Teacher", InternalRole.SCHOOL_MANAGER),
        ("Proctor", InternalRole.SCHOOL_MANAGER),
        ("Student", InternalRole.SCHOOL_MANAGER),
        ("Catechist Candidate", InternalRole.SCHOOL_MANAGER),
    ])
    def test_every_external_role_maps(self, external, expected):
        assert map_external_role(external) == expected

    @pytest.mark.parametrize("unknown", ["Bishop", "", None, "ark admin"])
    def test_unknown_roles_fall_back_to_least_privileged(self, unknown):
        assert map_external_role(unknown) == InternalRole.SCHOOL_MANAGER

    def test_enum_members_are_accepted(self):
        assert map_external_role(ExternalRole.ARK_ADMIN) == InternalRole.SUPER_ADMIN


class TestRoleAccess:

    @pytest.mark.parametrize("external", [
        role for role in ExternalRole
        if role not in (ExternalRole.STUDENT, ExternalRole.CATECHIST_CANDIDATE)
    ])
    def test_user_facing_roles_have_access(self, external):
        assert role_should_have_access(external) is True
        assert role_should_have_access(external.value) is True

    @pytest.mark.parametrize("external", ["Student", "Catechist Candidate"])
    def test_student_roles_have_no_access(self, external):
        assert role_should_have_access(external) is False

    def test_check_external_user_access(self):
        assert check_external_user_access(None) is None
        assert check_external_user_access("") is None
        assert check_external_user_access("Diocese Admin") == (True, InternalRole.DIOCESE_MANAGER)
        assert check_external_user_access("Student") == (False, InternalRole.SCHOOL_MANAGER)


class TestRoleCodes:

    def test_codes_follow_declaration_order(self):
        assert ExternalRole.ARK_ADMIN.code == 0
        assert ExternalRole.DIOCESE_ADMIN.code == 2
        assert ExternalRole.CENTER_ADMIN.code == 3
        assert ExternalRole.TEACHER.code == 5
        assert ExternalRole.STUDENT.code == 7

    def test_code_lookup(self):
        assert external_role_from_code(0) == ExternalRole.ARK_ADMIN
        assert external_role_from_code(8) == ExternalRole.CATECHIST_CANDIDATE
        assert external_role_from_code(9) is None
        assert external_role_from_code(-1) is None
        assert external_role_from_code(None) is None

    @pytest.mark.parametrize("code,expected", [
        (0, InternalRole.SUPER_ADMIN),
        (1, InternalRole.DIOCESE_MANAGER),
        (2, InternalRole.DIOCESE_MANAGER),
        (3, InternalRole.SCHOOL_MANAGER),
        (42, InternalRole.SCHOOL_MANAGER),
        (None, InternalRole.SCHOOL_MANAGER),
    ])
    def test_internal_role_from_code(self, code, expected):
        assert internal_role_from_code(code) == expected
