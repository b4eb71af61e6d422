"""Testes unitários do IdentityResolver: cascata perfil -> headers -> diretório."""
from unittest.mock import MagicMock

import pytest

from tfs_cli.errors import (
    AssignedToRequiredError,
    CancelledError,
    HTTPStatusError,
    IdentityNotFoundError,
    WhoamiUnavailableError,
)
from tfs_cli.models.identity_models import HeaderIdentity, Identity, Profile
from tfs_cli.services.identity_resolver import (
    SOURCE_HEADERS,
    SOURCE_PROFILE,
    IdentityResolver,
    identity_reference,
    identity_unique_name,
)


def identity(**props):
    return Identity(id="abc", properties=props)


class TestUniqueName:
    def test_domain_account_wins_over_mail(self):
        ident = identity(Domain="D", Account="A", Mail="m@x.com")
        assert identity_unique_name(ident) == "D\\A"

    def test_wrapped_values_are_unwrapped(self):
        ident = identity(
            Domain={"$type": "System.String", "$value": "CORP"},
            Account={"$type": "System.String", "$value": "ana"},
        )
        assert identity_unique_name(ident) == "CORP\\ana"

    def test_priority_chain(self):
        assert identity_unique_name(identity(Mail="m@x.com", Account="A")) == "m@x.com"
        assert identity_unique_name(identity(Account="A", UniqueName="U")) == "A"
        assert identity_unique_name(identity(UniqueName="U")) == "U"
        assert identity_unique_name(identity(), "fallback") == "fallback"

    def test_reference_prefers_subject_descriptor(self):
        ident = Identity(
            id="abc",
            descriptor="d1",
            subjectDescriptor="s1",
            providerDisplayName="Ana",
            properties={"Mail": "ana@x.com"},
        )
        assert identity_reference(ident) == {
            "id": "abc",
            "displayName": "Ana",
            "descriptor": "s1",
            "uniqueName": "ana@x.com",
        }

    def test_reference_falls_back_to_descriptor(self):
        ident = Identity(id="abc", descriptor="d1")
        assert identity_reference(ident, "CORP\\ana") == {"id": "abc", "descriptor": "d1", "uniqueName": "CORP\\ana"}


class TestCascade:
    def test_profile_first(self):
        client = MagicMock()
        client.profile_me.return_value = Profile(id="u1", displayName="Ana", emailAddress="ana@x.com")
        result = IdentityResolver(client).whoami()
        assert result.source == SOURCE_PROFILE
        assert result.assigned_to == "Ana<ana@x.com>"
        client.whoami_from_headers.assert_not_called()
        assert result.to_dict()["email"] == "ana@x.com"

    def test_profile_with_only_email(self):
        client = MagicMock()
        client.profile_me.return_value = Profile(emailAddress="ana@x.com")
        assert IdentityResolver(client).resolve_assignee() == "ana@x.com"

    def test_headers_with_directory(self):
        client = MagicMock()
        client.profile_me.side_effect = HTTPStatusError(404, "")
        client.whoami_from_headers.return_value = HeaderIdentity.parse("abc:CORP\\ana")
        client.resolve_identity_by_id.return_value = Identity(
            id="abc", providerDisplayName="Ana", properties={"Domain": "CORP", "Account": "ana"}
        )
        result = IdentityResolver(client).whoami()
        assert result.source == SOURCE_HEADERS
        assert result.assigned_to == {"id": "abc", "displayName": "Ana", "uniqueName": "CORP\\ana"}
        client.resolve_identity_by_id.assert_called_once_with("abc", cancel=None)

    def test_empty_profile_falls_through_to_headers(self):
        client = MagicMock()
        client.profile_me.return_value = Profile(id="u1")
        client.whoami_from_headers.return_value = HeaderIdentity.parse("abc:CORP\\ana")
        client.resolve_identity_by_id.side_effect = IdentityNotFoundError("identity not found")
        result = IdentityResolver(client).whoami()
        assert result.source == SOURCE_HEADERS
        assert result.assigned_to == {"id": "abc", "uniqueName": "CORP\\ana"}
        assert result.to_dict() == {
            "id": "abc",
            "uniqueName": "CORP\\ana",
            "assignedTo": {"id": "abc", "uniqueName": "CORP\\ana"},
            "source": SOURCE_HEADERS,
        }

    def test_header_without_id_skips_directory(self):
        client = MagicMock()
        client.profile_me.side_effect = HTTPStatusError(401, "")
        client.whoami_from_headers.return_value = HeaderIdentity.parse("ana@x.com")
        result = IdentityResolver(client).whoami()
        assert result.assigned_to == "ana@x.com"
        client.resolve_identity_by_id.assert_not_called()

    def test_whoami_raises_last_failure(self):
        client = MagicMock()
        client.profile_me.side_effect = HTTPStatusError(401, "")
        client.whoami_from_headers.side_effect = WhoamiUnavailableError("X-VSS-UserData header missing")
        with pytest.raises(WhoamiUnavailableError):
            IdentityResolver(client).whoami()

    def test_resolve_assignee_exhausted(self):
        client = MagicMock()
        client.profile_me.side_effect = HTTPStatusError(401, "")
        client.whoami_from_headers.side_effect = WhoamiUnavailableError("X-VSS-UserData header missing")
        with pytest.raises(AssignedToRequiredError) as exc:
            IdentityResolver(client).resolve_assignee()
        assert exc.value.code == "assigned_to_required"
        assert [d["code"] for d in exc.value.details] == ["http_error", "whoami_unavailable"]

    def test_cancellation_is_not_swallowed(self):
        client = MagicMock()
        client.profile_me.side_effect = CancelledError()
        with pytest.raises(CancelledError):
            IdentityResolver(client).whoami()
        client.whoami_from_headers.assert_not_called()
