"""Bundle packaging and verification tests."""

import copy
import json
from dataclasses import replace

import pytest

from wcaf_kernel import (
    BundleFormatError,
    EmptyTimelineError,
    PreconditionError,
    compute_event_hash,
    create_attestation,
    create_bundle,
    export_bundle_json,
    load_bundle_json,
    verify_bundle,
    verify_chain,
)
from wcaf_kernel.bundle import bundle_hash

from conftest import build_timeline


def _codes(result) -> list[str]:
    return [p.code.value for p in result.problems]


class TestCreateBundle:
    """Test bundle creation."""

    def test_unsigned_bundle(self):
        timeline = build_timeline("BUNDLE-TEST-001", count=2)
        bundle = create_bundle(timeline)

        assert bundle["bundle_version"] == "wcaf-bundle-1.0"
        assert bundle["document_id"] == "BUNDLE-TEST-001"
        assert len(bundle["timeline"]) == 2
        assert bundle["chain_verification"] == {
            "verified": True,
            "head_event_hash": timeline[-1].event_hash,
            "event_count": 2,
        }
        assert "bundle_signature" not in bundle
        assert "attestation" not in bundle

    def test_timeline_entries_carry_canonical_fields(self):
        timeline = build_timeline(count=1)
        entry = create_bundle(timeline)["timeline"][0]
        assert set(entry) == {
            "event_id", "ts", "document_id", "type", "actor",
            "payload", "prev_hash", "event_hash", "schema_version",
        }
        assert entry == timeline[0].to_dict()

    def test_empty_timeline_is_rejected(self):
        with pytest.raises(EmptyTimelineError):
            create_bundle([])

    def test_empty_timeline_is_precondition_error(self):
        with pytest.raises(PreconditionError):
            create_bundle([])

    def test_tampered_timeline_is_recorded_unverified(self):
        timeline = build_timeline(count=2)
        timeline[1].payload["decision"] = "BLOCK"

        bundle = create_bundle(timeline)
        check = bundle["chain_verification"]
        assert check["verified"] is False
        assert check["problems"] == [
            {
                "index": 1,
                "code": "HASH_MISMATCH",
                "expected_hash": check["problems"][0]["expected_hash"],
                "got_hash": timeline[1].event_hash,
            }
        ]

    def test_rsa_signed_bundle(self, rsa_private_pem):
        bundle = create_bundle(build_timeline(count=2), private_key=rsa_private_pem, key_id="bundle-key-2026")

        signature = bundle["bundle_signature"]
        assert signature["alg"] == "RSA-SHA256"
        assert signature["key_id"] == "bundle-key-2026"
        assert signature["signed_hash"] == bundle_hash(bundle)

    def test_ed25519_signed_bundle(self, ed25519_key):
        bundle = create_bundle(build_timeline(count=1), private_key=ed25519_key, key_id="k")
        assert bundle["bundle_signature"]["alg"] == "Ed25519"

    def test_key_without_key_id_does_not_sign(self, rsa_key):
        bundle = create_bundle(build_timeline(count=1), private_key=rsa_key)
        assert "bundle_signature" not in bundle

    def test_embedded_attestation(self, rsa_key):
        timeline = build_timeline(count=2)
        attestation = create_attestation("D1", timeline[-1].event_hash, "att-key", rsa_key)

        bundle = create_bundle(timeline, attestation=attestation)
        assert bundle["attestation"] == {
            "attested_at": attestation.attested_at,
            "head_event_hash": attestation.head_event_hash,
            "signature_alg": "RSA-SHA256",
            "signature": attestation.signature,
            "key_id": "att-key",
            "schema_version": "wcaf-attestation-1.0",
        }

    def test_bundle_is_independent_of_source_events(self):
        timeline = build_timeline(count=2)
        bundle = create_bundle(timeline)
        timeline[0].payload["seq"] = 42
        assert verify_bundle(bundle).chain_verified

    def test_record_with_injected_field_is_bundled_unverified(self):
        records = [e.to_dict() for e in build_timeline(count=2)]
        records[0]["extra"] = "smuggled"

        bundle = create_bundle(records)
        assert bundle["timeline"][0]["extra"] == "smuggled"
        assert bundle["chain_verification"]["verified"] is False
        assert bundle["chain_verification"]["problems"][0]["code"] == "HASH_MISMATCH"
        assert verify_bundle(bundle).chain_verified is False

    def test_legacy_events_keep_absent_fields_absent(self):
        timeline = [replace(e, schema_version=None) for e in build_timeline(count=1)]
        timeline = [replace(timeline[0], event_hash=_rehash(timeline[0]))]
        bundle = create_bundle(timeline)
        assert "schema_version" not in bundle["timeline"][0]
        assert bundle["chain_verification"]["verified"] is True


def _rehash(event):
    return compute_event_hash(event.core())


class TestVerifyBundle:
    """Test independent bundle re-verification."""

    def test_signed_bundle_verifies(self, rsa_private_pem, rsa_public_pem):
        bundle = create_bundle(build_timeline(count=2), private_key=rsa_private_pem, key_id="k")
        result = verify_bundle(bundle, rsa_public_pem)

        assert result.ok is True
        assert result.bundle_version_ok is True
        assert result.chain_verified is True
        assert result.bundle_signature_verified is True
        assert result.problems == []

    def test_ed25519_signed_bundle_verifies(self, ed25519_key, ed25519_public_pem):
        bundle = create_bundle(build_timeline(count=2), private_key=ed25519_key, key_id="k")
        assert verify_bundle(bundle, ed25519_public_pem).bundle_signature_verified is True

    def test_no_public_key_leaves_signature_unchecked(self, rsa_key):
        bundle = create_bundle(build_timeline(count=2), private_key=rsa_key, key_id="k")
        result = verify_bundle(bundle)
        assert result.bundle_signature_verified is None
        assert result.ok is True

    def test_unsigned_bundle_is_ok_on_chain_alone(self, rsa_public_pem):
        result = verify_bundle(create_bundle(build_timeline(count=2)), rsa_public_pem)
        assert result.bundle_signature_verified is None
        assert result.ok is True

    def test_wrong_public_key(self, rsa_key, other_rsa_public_pem):
        bundle = create_bundle(build_timeline(count=2), private_key=rsa_key, key_id="k")
        result = verify_bundle(bundle, other_rsa_public_pem)
        assert result.bundle_signature_verified is False
        assert result.ok is False
        assert [p.to_dict() for p in result.problems] == [{"code": "SIGNATURE_INVALID", "key_id": "k"}]

    def test_modified_field_is_bundle_hash_mismatch(self, rsa_key, rsa_public_pem):
        bundle = create_bundle(build_timeline(count=2), private_key=rsa_key, key_id="k")
        bundle["document_id"] = "SOMEONE-ELSE"

        result = verify_bundle(bundle, rsa_public_pem)
        assert result.bundle_signature_verified is False
        assert _codes(result) == ["BUNDLE_HASH_MISMATCH"]
        assert result.chain_verified is True
        assert result.ok is False

    def test_tampered_timeline_in_signed_bundle(self, rsa_key, rsa_public_pem):
        bundle = create_bundle(build_timeline(count=3), private_key=rsa_key, key_id="k")
        bundle["timeline"][2]["payload"]["verdict"] = "INVALID"

        result = verify_bundle(bundle, rsa_public_pem)
        assert result.chain_verified is False
        assert result.bundle_signature_verified is False
        assert _codes(result) == ["HASH_MISMATCH", "BUNDLE_HASH_MISMATCH"]
        assert result.problems[0].index == 2

    def test_recorded_chain_verification_is_not_trusted(self):
        timeline = build_timeline(count=2)
        timeline[1].payload["decision"] = "BLOCK"
        bundle = create_bundle(timeline)
        bundle["chain_verification"] = {"verified": True, "event_count": 2}

        result = verify_bundle(bundle)
        assert result.chain_verified is False
        assert result.ok is False

    def test_unsupported_version(self):
        bundle = create_bundle(build_timeline(count=1))
        bundle["bundle_version"] = "wcaf-bundle-0.1"
        result = verify_bundle(bundle)
        assert result.bundle_version_ok is False
        assert result.ok is False
        assert [p.to_dict() for p in result.problems] == [{
            "code": "UNSUPPORTED_VERSION",
            "expected_version": "wcaf-bundle-1.0",
            "got_version": "wcaf-bundle-0.1",
        }]

    @pytest.mark.parametrize("timeline", [[], None])
    def test_empty_or_missing_timeline_is_not_verified(self, timeline):
        bundle = create_bundle(build_timeline(count=1))
        bundle["timeline"] = timeline
        result = verify_bundle(bundle)
        assert result.chain_verified is False
        assert result.ok is False
        assert _codes(result) == ["EMPTY_TIMELINE"]

    def test_malformed_timeline_entries(self):
        bundle = create_bundle(build_timeline(count=1))
        bundle["timeline"] = ["not-an-event"]
        result = verify_bundle(bundle)
        assert result.chain_verified is False
        assert _codes(result) == ["MALFORMED_TIMELINE"]

    def test_malformed_signature_block(self, rsa_key, rsa_public_pem):
        bundle = create_bundle(build_timeline(count=1), private_key=rsa_key, key_id="k")
        bundle["bundle_signature"] = "oops"
        result = verify_bundle(bundle, rsa_public_pem)
        assert result.bundle_signature_verified is False
        assert _codes(result) == ["SIGNATURE_ERROR"]

    @pytest.mark.parametrize("alg", [123, ["RSA-SHA256"], None])
    def test_non_string_signature_alg(self, rsa_key, rsa_public_pem, alg):
        bundle = create_bundle(build_timeline(count=1), private_key=rsa_key, key_id="k")
        bundle["bundle_signature"]["alg"] = alg
        result = verify_bundle(bundle, rsa_public_pem)
        assert result.bundle_signature_verified is False
        assert _codes(result) == ["SIGNATURE_ERROR"]

    @pytest.mark.parametrize("timeline", ["not-a-list", {"0": {}}])
    def test_non_list_timeline_is_malformed(self, timeline):
        bundle = create_bundle(build_timeline(count=1))
        bundle["timeline"] = timeline
        result = verify_bundle(bundle)
        assert result.chain_verified is False
        assert _codes(result) == ["MALFORMED_TIMELINE"]

    def test_garbage_public_key_is_false_not_error(self, rsa_key):
        bundle = create_bundle(build_timeline(count=1), private_key=rsa_key, key_id="k")
        result = verify_bundle(bundle, "garbage")
        assert result.bundle_signature_verified is False

    def test_attestation_presence(self, rsa_key):
        timeline = build_timeline(count=1)
        attestation = create_attestation("D1", timeline[0].event_hash, "k", rsa_key)
        assert verify_bundle(create_bundle(timeline, attestation)).attestation_present is True
        assert verify_bundle(create_bundle(timeline)).attestation_present is False

    def test_does_not_mutate_bundle(self, rsa_key, rsa_public_pem):
        bundle = create_bundle(build_timeline(count=2), private_key=rsa_key, key_id="k")
        bundle["timeline"][0]["payload"]["seq"] = 7
        snapshot = copy.deepcopy(bundle)
        verify_bundle(bundle, rsa_public_pem)
        assert bundle == snapshot

    def test_result_wire_shape(self, rsa_key, rsa_public_pem):
        bundle = create_bundle(build_timeline(count=1), private_key=rsa_key, key_id="k")
        assert verify_bundle(bundle, rsa_public_pem).to_dict() == {
            "bundle_version_ok": True,
            "chain_verified": True,
            "bundle_signature_verified": True,
            "attestation_present": False,
            "problems": [],
            "ok": True,
        }

    @pytest.mark.parametrize("signed", [False, True])
    @pytest.mark.parametrize("tamper", [None, "payload", "extra_field"])
    @pytest.mark.parametrize("count", [1, 3])
    def test_chain_verdict_matches_verify_chain(self, rsa_key, signed, tamper, count):
        timeline = [e.to_dict() for e in build_timeline(count=count)]
        if tamper == "payload":
            timeline[-1]["payload"]["seq"] = -1
        elif tamper == "extra_field":
            timeline[0]["extra"] = "smuggled"
        kwargs = {"private_key": rsa_key, "key_id": "k"} if signed else {}

        bundle = create_bundle(timeline, **kwargs)
        assert verify_bundle(bundle).chain_verified == verify_chain(timeline).ok


class TestBundleJson:
    """Bundle JSON export and import."""

    def test_export_is_valid_json(self):
        bundle = create_bundle(build_timeline(count=1))
        parsed = json.loads(export_bundle_json(bundle))
        assert parsed["bundle_version"] == "wcaf-bundle-1.0"

    def test_signed_bundle_survives_round_trip(self, rsa_key, rsa_public_pem):
        bundle = create_bundle(build_timeline(count=3), private_key=rsa_key, key_id="k")
        loaded = load_bundle_json(export_bundle_json(bundle))
        assert loaded == bundle
        assert verify_bundle(loaded, rsa_public_pem).ok is True

    @pytest.mark.parametrize("text", ["not json", "[1, 2]", '"bundle"'])
    def test_load_rejects_non_bundles(self, text):
        with pytest.raises(BundleFormatError):
            load_bundle_json(text)
