"""
测试 config.py：多来源合并与校验策略构造。
"""

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from pydantic import ValidationError

from src.certstore import config as config_module
from src.certstore.config import Config, load_trust_anchors


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("VERIFY_CERTIFICATE", "MINIMUM_RSA_BITS", "MINIMUM_EC_BITS", "TRUST_ANCHOR_FILE", "PORT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CONFIG_FILE", str(tmp_path / "missing.json"))
    monkeypatch.chdir(tmp_path)


def test_defaults():
    policy = Config().policy()
    assert policy.verify_chain is False
    assert policy.minimum_rsa_bits == 1024
    assert policy.minimum_ec_bits == 160
    assert policy.trust_anchors == ()


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("VERIFY_CERTIFICATE", "yes")
    monkeypatch.setenv("MINIMUM_RSA_BITS", "2048")
    monkeypatch.setenv("TRUST_ANCHOR_FILE", "  ")

    cfg = Config()
    assert cfg.verify_certificate is True
    assert cfg.minimum_rsa_bits == 2048
    assert cfg.trust_anchor_file is None


def test_json_file_source(monkeypatch, tmp_path):
    path = tmp_path / "certstore.json"
    path.write_text(json.dumps({"minimum_ec_bits": 256, "port": 9000}), encoding="utf-8")
    monkeypatch.setenv("CONFIG_FILE", str(path))

    cfg = Config()
    assert cfg.port == 9000
    assert cfg.policy().minimum_ec_bits == 256


def test_env_wins_over_json_file(monkeypatch, tmp_path):
    path = tmp_path / "certstore.json"
    path.write_text(json.dumps({"minimum_rsa_bits": 4096}), encoding="utf-8")
    monkeypatch.setenv("CONFIG_FILE", str(path))
    monkeypatch.setenv("MINIMUM_RSA_BITS", "3072")

    assert Config().minimum_rsa_bits == 3072


def test_json_file_must_be_object(monkeypatch, tmp_path):
    path = tmp_path / "certstore.json"
    path.write_text("[1, 2]", encoding="utf-8")
    monkeypatch.setenv("CONFIG_FILE", str(path))

    with pytest.raises(ValueError):
        Config()


def test_minimum_bits_must_be_positive(monkeypatch):
    monkeypatch.setenv("MINIMUM_EC_BITS", "0")
    with pytest.raises(ValidationError):
        Config()


@pytest.mark.parametrize("raw,expected", [("", False), ("  ", False), ("off", False), ("1", True), ("true", True)])
def test_verify_flag_parsing(monkeypatch, raw, expected):
    monkeypatch.setenv("VERIFY_CERTIFICATE", raw)
    assert Config().verify_certificate is expected


def test_log_level_from_env(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert Config().log_level == "debug"


@pytest.fixture(scope="module")
def anchor_pem() -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "certstore anchor")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM)


def test_policy_loads_anchors_once(tmp_path, anchor_pem):
    path = tmp_path / "anchors.pem"
    path.write_bytes(anchor_pem + anchor_pem)

    policy = Config(verify_certificate=True, trust_anchor_file=str(path)).policy()

    assert policy.verify_chain is True
    assert len(policy.trust_anchors) == 2


def test_policy_skips_anchors_when_verification_off(tmp_path):
    cfg = Config(trust_anchor_file=str(tmp_path / "missing.pem"))
    assert cfg.policy().trust_anchors == ()


def test_missing_anchor_file_fails_at_startup(tmp_path):
    with pytest.raises(ValueError):
        Config(verify_certificate=True, trust_anchor_file=str(tmp_path / "missing.pem")).policy()


def test_empty_anchor_file_fails_at_startup(tmp_path):
    path = tmp_path / "empty.pem"
    path.write_text("")
    with pytest.raises(ValueError):
        load_trust_anchors(str(path))


def test_default_anchors_fall_back_to_capath(monkeypatch, tmp_path, anchor_pem):
    capath = tmp_path / "certs"
    capath.mkdir()
    (capath / "1a2b3c4d.0").write_bytes(anchor_pem)
    (capath / "README").write_text("not a certificate")
    monkeypatch.setattr(
        config_module.ssl,
        "get_default_verify_paths",
        lambda: SimpleNamespace(cafile=None, capath=str(capath)),
    )

    assert len(load_trust_anchors(None)) == 1


def test_default_anchors_missing(monkeypatch):
    monkeypatch.setattr(
        config_module.ssl,
        "get_default_verify_paths",
        lambda: SimpleNamespace(cafile=None, capath=None),
    )
    with pytest.raises(ValueError):
        load_trust_anchors(None)
