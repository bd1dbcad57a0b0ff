"""
Unit tests for startup configuration checks
"""
import pytest

from backend.api.main import create_app
from backend.core.config import Settings, validate_settings
from backend.core.identity.directory import HttpIdentityDirectory, StaticIdentityDirectory
from backend.core.identity.errors import ConfigurationError
from backend.core.identity.keys import generate_keypair, load_key_ring, save_keypair
from backend.core.identity.service import build_auth_service, build_directory

SECRET = "test-session-secret-0123456789abcdef"


def make_settings(**overrides) -> Settings:
    values = {
        "identity_service_url": "http://identity.test",
        "session_signing_key": SECRET,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestValidateSettings:

    def test_valid(self):
        settings = make_settings()
        assert validate_settings(settings) is settings

    @pytest.mark.parametrize("overrides", [
        {"identity_service_url": None},
        {"identity_service_url": ""},
        {"identity_directory_backend": "ldap"},
        {"session_signing_algorithm": "RS256"},
        {"challenge_ttl_seconds": 5},
        {"challenge_ttl_seconds": 3600},
        {"challenge_bytes": 8},
        {"session_ttl_seconds": 0},
        {"verifier_timeout_seconds": 0},
        {"directory_timeout_seconds": -1},
        {"max_pending_challenges": 0},
        {"session_cookie_samesite": "bogus"},
        {"session_cookie_samesite": "None "},
        {"session_cookie_samesite": "none", "session_cookie_secure": False},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ConfigurationError):
            validate_settings(make_settings(**overrides))

    def test_origins_list(self):
        settings = make_settings(allowed_origins="https://a.example, https://b.example,")
        assert settings.allowed_origins_list == ["https://a.example", "https://b.example"]

    def test_samesite_none_with_secure_cookie(self):
        settings = make_settings(session_cookie_samesite="none", session_cookie_secure=True)
        assert validate_settings(settings) is settings

    def test_trusted_ips_list(self):
        assert make_settings(trusted_ips="10.0.0.1, ,10.0.0.2").trusted_ips_list == ["10.0.0.1", "10.0.0.2"]

    def test_base_url_strips_slash(self):
        assert make_settings(identity_service_url="http://identity.test/").identity_service_base_url == (
            "http://identity.test"
        )


class TestKeyRingLoading:

    def test_hs256(self):
        ring = load_key_ring(make_settings())
        assert ring.active.kid == "primary"
        assert ring.active.algorithm == "HS256"

    def test_missing_secret(self):
        with pytest.raises(ConfigurationError):
            load_key_ring(make_settings(session_signing_key=None))

    def test_short_secret(self):
        with pytest.raises(ConfigurationError):
            load_key_ring(make_settings(session_signing_key="too-short"))

    def test_previous_keys(self):
        ring = load_key_ring(make_settings(
            session_signing_key_id="2025-06",
            session_previous_keys=f"2025-01:{'a' * 32}, 2024-12:{'b' * 32}",
        ))
        assert ring.key_ids == ["2024-12", "2025-01", "2025-06"]
        assert not ring.get("2025-01").can_sign

    @pytest.mark.parametrize("raw", ["no-separator", ":material", "kid:"])
    def test_malformed_previous_keys(self, raw):
        with pytest.raises(ConfigurationError):
            load_key_ring(make_settings(session_previous_keys=raw))

    def test_duplicate_kid(self):
        with pytest.raises(ConfigurationError):
            load_key_ring(make_settings(session_previous_keys=f"primary:{'a' * 32}"))

    def test_eddsa(self, tmp_path):
        private_path, _ = save_keypair(*generate_keypair(), tmp_path, name="current")
        _, old_public_path = save_keypair(*generate_keypair(), tmp_path, name="old")

        ring = load_key_ring(make_settings(
            session_signing_algorithm="EdDSA",
            session_signing_key=None,
            session_signing_key_path=str(private_path),
            session_signing_key_id="ed-2",
            session_previous_keys=f"ed-1:{old_public_path}",
        ))

        assert ring.active.algorithm == "EdDSA"
        assert ring.get("ed-1").algorithm == "EdDSA"
        assert oct(private_path.stat().st_mode & 0o777) == "0o600"

    def test_eddsa_missing_key_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_key_ring(make_settings(
                session_signing_algorithm="EdDSA",
                session_signing_key_path=str(tmp_path / "missing.key"),
            ))

    def test_eddsa_without_path(self):
        with pytest.raises(ConfigurationError):
            load_key_ring(make_settings(session_signing_algorithm="EdDSA"))


class TestServiceWiring:

    def test_http_directory_by_default(self):
        directory = build_directory(make_settings())
        assert isinstance(directory, HttpIdentityDirectory)
        assert directory.resolve_url == "http://identity.test/api/v1/identity/resolve"

    def test_static_directory(self, tmp_path, monkeypatch):
        (tmp_path / "identity_directory.yaml").write_text(
            'identities:\n  user@example.com: "did:example:123"\n'
        )
        monkeypatch.setenv("CONFIG_DIR", str(tmp_path))

        directory = build_directory(make_settings(identity_directory_backend="static"))

        assert isinstance(directory, StaticIdentityDirectory)
        assert len(directory) == 1

    def test_static_directory_missing(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CONFIG_DIR", str(tmp_path))

        with pytest.raises(ConfigurationError):
            build_directory(make_settings(
                identity_directory_backend="static",
                identity_directory_file="missing_directory.yaml",
            ))

    def test_build_uses_settings(self):
        service = build_auth_service(make_settings(challenge_ttl_seconds=120, session_ttl_seconds=600))

        assert service.issuer.ttl_seconds == 120
        assert service.sessions.ttl_seconds == 600
        assert service.strategies.names() == ["did-challenge"]

    def test_create_app_fails_on_bad_cookie_samesite(self):
        with pytest.raises(ConfigurationError):
            create_app(settings=make_settings(session_cookie_samesite="bogus"))

    def test_create_app_passes_trusted_ips_to_limiter(self):
        app = create_app(settings=make_settings(trusted_ips="10.1.2.3"))
        assert app.state.rate_limiter.trusted_ips == {"10.1.2.3"}

    def test_create_app_fails_fast(self):
        with pytest.raises(ConfigurationError):
            create_app(settings=make_settings(session_signing_key=None))
