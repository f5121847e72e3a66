"""
Tests for findsymbols.cli
=========================
Run with:  pytest tests/test_cli.py -v
"""

from __future__ import annotations

import argparse
import hashlib
import json
import logging

import pytest

from findsymbols.cli import RunConfig, _byte_count, build_parser, main, process_file, run
from findsymbols.reader import ScanConfig
from findsymbols.scanner import MARKER

BINARY = b"\x7fELF\x00" + MARKER + b"player_health\x00" + MARKER + b"ammo\x00"


@pytest.fixture
def binary(tmp_path):
    path = tmp_path / "game.bin"
    path.write_bytes(BINARY)
    return path


def _read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Single-file mode
# ---------------------------------------------------------------------------

class TestSingleFileMode:
    def test_writes_per_file_output(self, binary, capsys):
        assert run([binary], RunConfig()) == 0
        data = _read_json(binary.parent / "game.bin.symbols.json")
        assert data == {"file_symbols": [{
            "name": "game.bin",
            "hash": hashlib.sha256(BINARY).hexdigest(),
            "symbols": ["ammo", "player_health"],
        }]}
        assert capsys.readouterr().out == f"{binary}: 2 symbols\n"

    def test_skips_existing_output(self, binary, caplog, capsys):
        target = binary.parent / "game.bin.symbols.json"
        target.write_text("keep", encoding="utf-8")
        with caplog.at_level(logging.INFO, logger="findsymbols.cli"):
            assert run([binary], RunConfig()) == 0
        assert target.read_text(encoding="utf-8") == "keep"
        assert "Skipping existing file" in caplog.text
        assert capsys.readouterr().out == ""

    def test_clobber_overwrites(self, binary):
        target = binary.parent / "game.bin.symbols.json"
        target.write_text("stale", encoding="utf-8")
        assert run([binary], RunConfig(clobber=True)) == 0
        assert len(_read_json(target)["file_symbols"]) == 1

    def test_each_file_gets_one_record(self, tmp_path):
        paths = []
        for name in ("a.bin", "b.bin"):
            path = tmp_path / name
            path.write_bytes(MARKER + name.encode() + b"\x00")
            paths.append(path)
        assert run(paths, RunConfig()) == 0
        for path in paths:
            records = _read_json(path.parent / f"{path.name}.symbols.json")["file_symbols"]
            assert [r["symbols"] for r in records] == [[path.name]]


# ---------------------------------------------------------------------------
# Aggregate mode
# ---------------------------------------------------------------------------

class TestAggregateMode:
    def test_rescan_does_not_duplicate(self, binary, tmp_path):
        store = tmp_path / "all.json"
        cfg = RunConfig(output=store)
        assert run([binary], cfg) == 0
        assert run([binary], cfg) == 0
        records = _read_json(store)["file_symbols"]
        assert len(records) == 1
        assert records[0]["hash"] == hashlib.sha256(BINARY).hexdigest()

    def test_merges_into_existing(self, binary, tmp_path):
        store = tmp_path / "all.json"
        store.write_text(json.dumps({"file_symbols": [
            {"name": "other.bin", "hash": "ffff", "symbols": ["x"]},
        ]}), encoding="utf-8")
        assert run([binary], RunConfig(output=store)) == 0
        names = [r["name"] for r in _read_json(store)["file_symbols"]]
        assert names == ["other.bin", "game.bin"]

    def test_no_per_file_output(self, binary, tmp_path):
        run([binary], RunConfig(output=tmp_path / "all.json"))
        assert not (binary.parent / "game.bin.symbols.json").exists()

    def test_identical_content_keeps_latest_name(self, tmp_path):
        first, second = tmp_path / "one.bin", tmp_path / "two.bin"
        first.write_bytes(BINARY)
        second.write_bytes(BINARY)
        store = tmp_path / "all.json"
        assert run([first, second], RunConfig(output=store)) == 0
        records = _read_json(store)["file_symbols"]
        assert [r["name"] for r in records] == ["two.bin"]

    def test_store_with_lone_surrogate_still_saved(self, binary, tmp_path):
        store = tmp_path / "all.json"
        store.write_text(
            '{"file_symbols": [{"name": "odd.bin", "hash": "ffff", "symbols": ["\\ud800"]}]}',
            encoding="utf-8",
        )
        assert run([binary], RunConfig(output=store)) == 0
        records = _read_json(store)["file_symbols"]
        assert [r["name"] for r in records] == ["odd.bin", "game.bin"]
        assert records[0]["symbols"] == ["\ud800"]

    def test_malformed_store_aborts_before_scanning(self, binary, tmp_path, caplog, capsys):
        store = tmp_path / "all.json"
        store.write_text("{broken", encoding="utf-8")
        assert run([binary], RunConfig(output=store)) == 1
        assert store.read_text(encoding="utf-8") == "{broken"
        assert "Error reading collection" in caplog.text
        assert capsys.readouterr().out == ""


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestErrors:
    def test_missing_input_stops_run(self, binary, tmp_path, caplog, capsys):
        missing = tmp_path / "missing.bin"
        assert run([missing, binary], RunConfig()) == 1
        assert "Error processing" in caplog.text
        assert not (binary.parent / "game.bin.symbols.json").exists()
        assert capsys.readouterr().out == ""

    def test_earlier_outputs_kept(self, binary, tmp_path):
        missing = tmp_path / "missing.bin"
        assert run([binary, missing], RunConfig()) == 1
        assert (binary.parent / "game.bin.symbols.json").exists()

    def test_write_failure_keeps_store(self, binary, tmp_path, caplog, monkeypatch, capsys):
        store = tmp_path / "all.json"
        original = json.dumps({"file_symbols": [
            {"name": "other.bin", "hash": "ffff", "symbols": ["x"]},
        ]})
        store.write_text(original, encoding="utf-8")

        def fail(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("findsymbols.collection.os.replace", fail)
        assert run([binary], RunConfig(output=store)) == 1
        assert store.read_text(encoding="utf-8") == original
        assert "Error writing" in caplog.text
        assert capsys.readouterr().out == ""

    def test_strict_decoding_failure(self, tmp_path, caplog):
        path = tmp_path / "bad.bin"
        path.write_bytes(MARKER + b"\xff\xfe\x00")
        assert run([path], RunConfig(errors="strict")) == 1
        assert "Error processing" in caplog.text


# ---------------------------------------------------------------------------
# process_file / RunConfig
# ---------------------------------------------------------------------------

class TestProcessFile:
    def test_uses_scan_config(self, binary):
        cfg = RunConfig(scan=ScanConfig(chunk_size=3, max_extension=2))
        record = process_file(binary, cfg)
        assert record.symbols == ["ammo", "player_health"]

    def test_from_args(self):
        args = build_parser().parse_args(["-clobber", "--output", "x.json", "--chunk-size", "1M", "f"])
        cfg = RunConfig.from_args(args)
        assert cfg.clobber is True
        assert str(cfg.output) == "x.json"
        assert cfg.scan.chunk_size == 1024 * 1024
        assert cfg.scan.max_extension is None


# ---------------------------------------------------------------------------
# Argument parsing / main
# ---------------------------------------------------------------------------

class TestByteCount:
    @pytest.mark.parametrize("text, expected", [
        ("4096", 4096),
        ("64K", 64 * 1024),
        ("100M", 100 * 1024 ** 2),
        ("100MiB", 100 * 1024 ** 2),
        ("1g", 1024 ** 3),
        ("0", 0),
    ])
    def test_valid(self, text, expected):
        assert _byte_count(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", "-5", "1.5M"])
    def test_invalid(self, text):
        with pytest.raises(argparse.ArgumentTypeError):
            _byte_count(text)


class TestMain:
    def test_no_files_prints_usage(self, capsys):
        assert main([]) == 0
        assert "usage:" in capsys.readouterr().out

    @pytest.mark.parametrize("flag", ["-h", "-help", "--help"])
    def test_help(self, flag, capsys, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main([flag, str(tmp_path / "never.bin")])
        assert exc.value.code == 0
        assert "--clobber" in capsys.readouterr().out

    def test_processes_files(self, binary, capsys):
        assert main([str(binary)]) == 0
        assert f"{binary}: 2 symbols" in capsys.readouterr().out

    def test_aggregate_flag(self, binary, tmp_path):
        store = tmp_path / "all.json"
        assert main(["-output", str(store), str(binary)]) == 0
        assert len(_read_json(store)["file_symbols"]) == 1

    def test_zero_chunk_size_rejected(self, binary):
        with pytest.raises(SystemExit) as exc:
            main(["--chunk-size", "0", str(binary)])
        assert exc.value.code == 2
