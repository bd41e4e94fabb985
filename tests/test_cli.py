"""
Command-line interface tests.

Run with: pytest tests/test_cli.py -v
"""

import json

import pytest
import yaml

from parrot.keys import Keypair, ss58_encode
from parrot.offchain.cli import CLIError, OutputFormat, format_output, load_key, main


def run_json(capsys, *argv):
    code = main(list(argv))
    out = capsys.readouterr().out
    assert code == 0, out
    return json.loads(out)


# =============================================================================
# HELPERS
# =============================================================================


class TestHelpers:

    def test_load_key_dev_uri(self):
        assert load_key("//Bob").identity == Keypair.from_uri("//Bob").identity

    def test_load_key_seed(self):
        seed = bytes(range(32))
        assert load_key("0x" + seed.hex()).identity == Keypair.from_seed(seed).identity

    @pytest.mark.parametrize("spec", ["0xdead", "Bob", "0x" + "zz" * 32])
    def test_load_key_rejects(self, spec):
        with pytest.raises(ValueError):
            load_key(spec)

    def test_format_output(self):
        data = {"a": 1, "b": "two"}
        assert json.loads(format_output(data, OutputFormat.JSON)) == data
        assert yaml.safe_load(format_output(data, OutputFormat.YAML)) == data
        assert format_output(data, OutputFormat.TEXT) == "a: 1\nb: two"
        assert format_output("0xabc", OutputFormat.JSON) == "0xabc"

    def test_cli_error_exit_code(self):
        assert CLIError("usage", exit_code=2).exit_code == 2


# =============================================================================
# COMMANDS
# =============================================================================


class TestAddressCommand:

    def test_address(self, capsys):
        result = run_json(capsys, "address", "//Alice")
        alice = Keypair.from_uri("//Alice")
        assert result["address"] == alice.address
        assert result["public_key"] == alice.identity.to_hex()
        assert result["ss58_prefix"] == 42

    def test_address_prefix_from_config(self, capsys, tmp_path):
        (tmp_path / "parrot.yaml").write_text("ledger:\n  ss58_prefix: 0\n", encoding="utf-8")
        result = run_json(capsys, "address", "//Alice")
        assert result["ss58_prefix"] == 0
        assert result["address"] == ss58_encode(Keypair.from_uri("//Alice").identity.public_key, 0)

    def test_bad_key_fails(self, capsys):
        assert main(["address", "0x1234"]) == 1
        assert "Error" in capsys.readouterr().err

    def test_quiet(self, capsys):
        assert main(["--quiet", "address", "0x1234"]) == 1
        assert "Error:" not in capsys.readouterr().err


class TestSignAndInspect:

    def test_transfer_hex_round_trip(self, capsys):
        charlie = Keypair.from_uri("//Charlie")
        assert main([
            "sign-transfer", "--key", "//Bob", "--dest", charlie.address,
            "--amount", "500", "--nonce", "3", "--encoding", "hex",
        ]) == 0
        envelope_hex = capsys.readouterr().out.strip()
        assert envelope_hex.startswith("0x01")

        result = run_json(capsys, "inspect", envelope_hex)
        assert result["kind"] == "transfer"
        assert result["authorization"] == {
            "amount": "500", "destination": charlie.address, "nonce": "3",
        }
        assert result["signer"] == Keypair.from_uri("//Bob").address
        assert result["signature_valid"] is True

    def test_offer_json_file(self, capsys, tmp_path):
        envelope = run_json(
            capsys,
            "sign-offer", "--key", "//Bob",
            "--offered-token", "1", "--offered-amount", "100",
            "--requested-token", "0", "--requested-amount", "200",
            "--nonce", "0",
        )
        assert envelope["kind"] == "offer"
        path = tmp_path / "offer.json"
        path.write_text(json.dumps(envelope), encoding="utf-8")

        result = run_json(capsys, "inspect", str(path))
        assert result["authorization"]["requested_amount"] == "200"
        assert result["signature_valid"] is True

    def test_tampered_envelope_is_flagged(self, capsys):
        envelope = run_json(
            capsys,
            "sign-transfer", "-k", "//Bob", "-d", Keypair.from_uri("//Dave").address,
            "-a", "10", "-n", "0",
        )
        envelope["authorization"]["amount"] = "10000"
        result = run_json(capsys, "inspect", json.dumps(envelope))
        assert result["signature_valid"] is False

    def test_invalid_amount_fails(self, capsys):
        code = main([
            "sign-transfer", "-k", "//Bob", "-d", Keypair.from_uri("//Dave").address,
            "-a", "-1", "-n", "0",
        ])
        assert code == 1

    def test_inline_hex_longer_than_a_filename(self, capsys):
        """A transfer envelope in hex is far past the OS filename limit."""
        assert main([
            "sign-transfer", "-k", "//Bob", "-d", Keypair.from_uri("//Eve").address,
            "-a", "7", "-n", "1", "-e", "hex",
        ]) == 0
        envelope_hex = capsys.readouterr().out.strip()
        assert len(envelope_hex) > 255

        assert run_json(capsys, "inspect", envelope_hex)["signature_valid"] is True
        assert run_json(capsys, "inspect", envelope_hex[2:])["signature_valid"] is True

    def test_unreadable_path(self, capsys, tmp_path):
        assert main(["inspect", str(tmp_path / "missing.json")]) == 1
        assert "Not an envelope or readable file" in capsys.readouterr().err
        assert main(["inspect", "x" * 400]) == 1

    def test_malformed_envelope(self, capsys):
        assert main(["inspect", "{not json"]) == 1
        assert main(["inspect", "0x09"]) == 1


class TestConfigCommands:

    def test_show(self, capsys):
        result = run_json(capsys, "config", "show")
        assert result["retry"]["max_attempts"] == 1
        assert result["ledger"]["ss58_prefix"] == 42

    def test_show_yaml(self, capsys):
        assert main(["--format", "yaml", "config", "show"]) == 0
        assert yaml.safe_load(capsys.readouterr().out)["confirmation"]["max_polls"] == 60

    def test_validate(self, capsys):
        assert run_json(capsys, "config", "validate") == {"valid": True, "errors": []}

    def test_config_without_subcommand(self, capsys):
        assert main(["config"]) == 2

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "parrot-offchain" in capsys.readouterr().out
