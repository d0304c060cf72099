import hashlib

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from conduitnode.tee import (
    AttestationError,
    TrustList,
    attest_device,
    verify_challenge_response,
)


def _pub_hex(key):
    return key.public_key().public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
    ).hex()


def _sign(key, digest):
    return key.sign(digest, ec.ECDSA(hashes.SHA256())).hex()


@pytest.fixture
def keys():
    return ec.generate_private_key(ec.SECP256R1()), ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def trust(tmp_path):
    return TrustList(tmp_path / "trust.json")


def _cert(mfr, dev, g2_hex="ab" * 96, model="m1", fw="fw1"):
    body = bytes.fromhex(_pub_hex(dev)) + bytes.fromhex(g2_hex) + model.encode() + fw.encode()
    return dict(
        dev_pk_hex=_pub_hex(dev),
        device_pk_g2_hex=g2_hex,
        manufacturer_pk_hex=_pub_hex(mfr),
        model=model,
        firmware_hash=fw,
        manufacturer_sig_hex=_sign(mfr, hashlib.sha256(body).digest()),
    )


def test_trust_list_add_persist_remove(tmp_path):
    path = tmp_path / "trust.json"
    tl = TrustList(path)
    entry = tl.add("aa11", "Acme")
    assert entry.name == "Acme"
    assert tl.contains("aa11")
    reloaded = TrustList(path)
    assert [m.pk_hex for m in reloaded.items()] == ["aa11"]
    reloaded.remove("aa11")
    assert TrustList(path).items() == []


def test_trust_list_duplicate_rejected(trust):
    trust.add("aa11", "Acme")
    with pytest.raises(ValueError):
        trust.add("aa11", "Other")
    assert len(trust.items()) == 1


def test_trust_list_remove_missing(trust):
    with pytest.raises(KeyError):
        trust.remove("nope")


def test_attest_device_success(trust, keys):
    mfr, dev = keys
    cert = _cert(mfr, dev)
    trust.add(cert["manufacturer_pk_hex"], "Acme")
    result = attest_device(trust, **cert)
    assert result["status"] == "challenge"
    assert len(bytes.fromhex(result["nonce_hex"])) == 32
    assert result["device_pk_g2_hex"] == cert["device_pk_g2_hex"]


def test_attest_device_untrusted(trust, keys):
    mfr, dev = keys
    cert = _cert(mfr, dev)
    with pytest.raises(AttestationError) as exc:
        attest_device(trust, **cert)
    assert exc.value.status == 403
    assert exc.value.to_dict()["manufacturer_pk_hex"] == cert["manufacturer_pk_hex"]


def test_attest_device_bad_signature(trust, keys):
    mfr, dev = keys
    cert = _cert(mfr, dev)
    trust.add(cert["manufacturer_pk_hex"], "Acme")
    cert["model"] = "tampered"
    with pytest.raises(AttestationError) as exc:
        attest_device(trust, **cert)
    assert exc.value.status == 403
    assert exc.value.message == "certificate verification failed"


def test_attest_device_invalid_hex(trust, keys):
    mfr, dev = keys
    cert = _cert(mfr, dev)
    trust.add(cert["manufacturer_pk_hex"], "Acme")
    cert["dev_pk_hex"] = "zz"
    with pytest.raises(AttestationError) as exc:
        attest_device(trust, **cert)
    assert exc.value.status == 400
    assert exc.value.message == "invalid dev_pk_hex"


def test_attest_device_invalid_der(trust, keys):
    mfr, dev = keys
    cert = _cert(mfr, dev)
    trust.add(cert["manufacturer_pk_hex"], "Acme")
    cert["manufacturer_sig_hex"] = "0102"
    with pytest.raises(AttestationError) as exc:
        attest_device(trust, **cert)
    assert exc.value.message == "invalid DER signature"


def test_attest_device_invalid_manufacturer_key(trust, keys):
    mfr, dev = keys
    cert = _cert(mfr, dev)
    cert["manufacturer_pk_hex"] = "04" + "00" * 10
    trust.add(cert["manufacturer_pk_hex"], "Broken")
    with pytest.raises(AttestationError) as exc:
        attest_device(trust, **cert)
    assert exc.value.message == "invalid manufacturer P-256 key"


def test_challenge_response_success(keys):
    _, dev = keys
    nonce = bytes(range(32))
    sig = _sign(dev, hashlib.sha256(nonce).digest())
    result = verify_challenge_response(_pub_hex(dev), nonce.hex(), sig)
    assert result == {"status": "attested", "dev_pk_hex": _pub_hex(dev)}


def test_challenge_response_wrong_key(keys):
    other, dev = keys
    nonce = bytes(range(32))
    sig = _sign(other, hashlib.sha256(nonce).digest())
    with pytest.raises(AttestationError) as exc:
        verify_challenge_response(_pub_hex(dev), nonce.hex(), sig)
    assert exc.value.status == 403
    assert exc.value.message == "challenge verification failed"


def test_challenge_response_short_nonce(keys):
    _, dev = keys
    with pytest.raises(AttestationError) as exc:
        verify_challenge_response(_pub_hex(dev), "00" * 16, "3000")
    assert exc.value.message == "invalid nonce_hex"
    assert exc.value.status == 400


def test_challenge_response_bad_device_key():
    with pytest.raises(AttestationError) as exc:
        verify_challenge_response("0011", "00" * 32, "3000")
    assert exc.value.message == "invalid P-256 device key"