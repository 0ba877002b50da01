"""Command-line tests using click's CliRunner."""

import json

import pytest
from click.testing import CliRunner

from wcaf_kernel import create_attestation, create_bundle, export_bundle_json
from wcaf_kernel.cli import main

from conftest import build_timeline


@pytest.fixture
def runner():
    return CliRunner()


def _write_bundle(path, bundle):
    path.write_text(export_bundle_json(bundle), encoding="utf-8")
    return str(path)


def _write_key(path, pem):
    path.write_text(pem, encoding="utf-8")
    return str(path)


class TestVerifyBundleCommand:
    """wcaf verify-bundle"""

    def test_signed_bundle_ok(self, runner, tmp_path, rsa_key, rsa_public_pem):
        bundle_file = _write_bundle(
            tmp_path / "b.json", create_bundle(build_timeline(count=3), private_key=rsa_key, key_id="k")
        )
        key_file = _write_key(tmp_path / "pub.pem", rsa_public_pem)

        result = runner.invoke(main, ["verify-bundle", bundle_file, "--public-key", key_file])
        assert result.exit_code == 0, result.output
        assert "chain:     verified" in result.output
        assert "signature: verified" in result.output
        assert result.output.strip().endswith("OK")

    def test_unchecked_signature_without_key(self, runner, tmp_path, rsa_key):
        bundle_file = _write_bundle(
            tmp_path / "b.json", create_bundle(build_timeline(count=1), private_key=rsa_key, key_id="k")
        )
        result = runner.invoke(main, ["verify-bundle", bundle_file])
        assert result.exit_code == 0
        assert "signature: not checked" in result.output

    def test_tampered_bundle_fails(self, runner, tmp_path, rsa_key, rsa_public_pem):
        bundle = create_bundle(build_timeline(count=2), private_key=rsa_key, key_id="k")
        bundle["timeline"][1]["payload"]["verdict"] = "INVALID"
        bundle_file = _write_bundle(tmp_path / "b.json", bundle)
        key_file = _write_key(tmp_path / "pub.pem", rsa_public_pem)

        result = runner.invoke(main, ["verify-bundle", bundle_file, "--public-key", key_file])
        assert result.exit_code == 1
        assert "chain:     BROKEN" in result.output
        assert "HASH_MISMATCH" in result.output
        assert result.output.strip().endswith("FAILED")

    def test_json_output(self, runner, tmp_path):
        bundle_file = _write_bundle(tmp_path / "b.json", create_bundle(build_timeline(count=2)))

        result = runner.invoke(main, ["verify-bundle", bundle_file, "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "bundle_version_ok": True,
            "chain_verified": True,
            "bundle_signature_verified": None,
            "attestation_present": False,
            "problems": [],
            "ok": True,
        }

    def test_not_json(self, runner, tmp_path):
        path = tmp_path / "b.json"
        path.write_text("{not json", encoding="utf-8")
        result = runner.invoke(main, ["verify-bundle", str(path)])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(main, ["verify-bundle", str(tmp_path / "nope.json")])
        assert result.exit_code == 2

    def test_log_level_option(self, runner, tmp_path):
        bundle_file = _write_bundle(tmp_path / "b.json", create_bundle(build_timeline(count=1)))
        result = runner.invoke(main, ["--log-level", "debug", "verify-bundle", bundle_file])
        assert result.exit_code == 0


class TestSummaryCommand:
    """wcaf summary"""

    def test_one_line_summary(self, runner, tmp_path, rsa_key):
        timeline = build_timeline("INV-7", count=2)
        bundle = create_bundle(timeline, private_key=rsa_key, key_id="k")
        bundle_file = _write_bundle(tmp_path / "b.json", bundle)

        result = runner.invoke(main, ["summary", bundle_file])
        assert result.exit_code == 0
        assert result.output.strip() == (
            f"INV-7 (wcaf-bundle-1.0) | 2 events [POLICY_DECISION, VERIFY_RESULT] | "
            f"{timeline[-1].event_hash[:12]}... | signed"
        )


class TestVerifyAttestationCommand:
    """wcaf verify-attestation"""

    def test_valid(self, runner, tmp_path, rsa_key, rsa_public_pem):
        attestation = create_attestation("D1", "ab" * 32, "k", rsa_key)
        path = tmp_path / "att.json"
        path.write_text(json.dumps(attestation.to_dict()), encoding="utf-8")
        key_file = _write_key(tmp_path / "pub.pem", rsa_public_pem)

        result = runner.invoke(main, ["verify-attestation", str(path), "--public-key", key_file])
        assert result.exit_code == 0
        assert result.output.strip() == "VALID"

    def test_wrong_key(self, runner, tmp_path, rsa_key, other_rsa_public_pem):
        attestation = create_attestation("D1", "ab" * 32, "k", rsa_key)
        path = tmp_path / "att.json"
        path.write_text(json.dumps(attestation.to_dict()), encoding="utf-8")
        key_file = _write_key(tmp_path / "pub.pem", other_rsa_public_pem)

        result = runner.invoke(main, ["verify-attestation", str(path), "--public-key", key_file])
        assert result.exit_code == 1
        assert result.output.strip() == "INVALID"

    def test_public_key_required(self, runner, tmp_path):
        path = tmp_path / "att.json"
        path.write_text("{}", encoding="utf-8")
        result = runner.invoke(main, ["verify-attestation", str(path)])
        assert result.exit_code == 2
