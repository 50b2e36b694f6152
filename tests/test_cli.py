import json
import shlex
import subprocess
import sys


def run_cli(cmd: str) -> str:
    exe = [sys.executable, "-m", "molloci.cli"]
    return subprocess.check_output(exe + shlex.split(cmd), text=True)


def test_info():
    out = run_cli("info")
    d = json.loads(out)
    assert "version" in d["package"]
    assert d["package"]["default_assembly_id"] == "1"
    assert [b["label"] for b in d["package"]["buckets"]][0] == "1ABC - Polymers"


def test_oper():
    d = json.loads(run_cli("oper '(X0)(1-5)' --match 2xX0"))
    assert d["groups"] == [["X0"], ["1", "2", "3", "4", "5"]]
    assert d["matches"] is True
