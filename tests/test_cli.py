"""Tests for the georef command line."""

import json

import pytest

from georef.cli import main


@pytest.fixture
def database_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    assert main(["--database-url", url, "init-db"]) == 0
    return url


@pytest.fixture
def sources(tmp_path):
    regions = tmp_path / "regions.csv"
    regions.write_text("code,name\n04,Region IV-A\n", encoding="utf-8")
    cities = tmp_path / "cities.csv"
    cities.write_text(
        "code,name,province_code,type,is_independent\n041419,Bacoor,0414,City,false\n",
        encoding="utf-8"
    )
    return {"regions": str(regions), "cities": str(cities)}


def test_import_then_audit(database_url, sources, capsys):
    code = main([
        "--database-url", database_url, "import",
        "--regions", sources["regions"], "--cities", sources["cities"], "--batch-size", "10",
    ])
    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["batch_size"] == 10
    assert [level["level"] for level in report["levels"]] == ["region", "city"]

    assert main(["--database-url", database_url, "audit"]) == 0
    audit = json.loads(capsys.readouterr().out)
    # Province 0414 was never imported
    assert audit["issues"]["orphaned_cities"] == 1


def test_synthesize_repairs_orphans(database_url, sources, capsys):
    main(["--database-url", database_url, "import", "--regions", sources["regions"], "--cities", sources["cities"]])
    capsys.readouterr()

    assert main(["--database-url", database_url, "synthesize"]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["provinces"] == ["0414"]

    main(["--database-url", database_url, "audit"])
    assert json.loads(capsys.readouterr().out)["total_issues"] == 0


def test_import_without_sources(database_url):
    assert main(["--database-url", database_url, "import"]) == 2


def test_missing_source_file(database_url, tmp_path):
    code = main(["--database-url", database_url, "import", "--regions", str(tmp_path / "missing.csv")])
    assert code == 1


def test_remediate_requires_level(database_url):
    assert main(["--database-url", database_url, "remediate", "--action", "delete-orphans"]) == 2


def test_remediate_delete_orphans(database_url, sources, capsys):
    main(["--database-url", database_url, "import", "--regions", sources["regions"], "--cities", sources["cities"]])
    capsys.readouterr()

    code = main(["--database-url", database_url, "remediate", "--action", "delete-orphans", "--level", "city"])

    assert code == 0
    assert json.loads(capsys.readouterr().out)["details"]["codes"] == ["041419"]


def test_remediate_realign_parents(database_url, tmp_path, capsys):
    regions = tmp_path / "regions.csv"
    regions.write_text("code,name\n04,Region IV-A\n05,Bicol\n", encoding="utf-8")
    provinces = tmp_path / "provinces.csv"
    provinces.write_text("code,name,region_code\n0414,Cavite,05\n", encoding="utf-8")
    main(["--database-url", database_url, "import", "--regions", str(regions), "--provinces", str(provinces)])
    report = json.loads(capsys.readouterr().out)
    assert report["levels"][1]["prefix_mismatches"] == 1

    assert main(["--database-url", database_url, "remediate", "--action", "realign-parents"]) == 2
    code = main(["--database-url", database_url, "remediate", "--action", "realign-parents", "--level", "province"])

    assert code == 0
    assert json.loads(capsys.readouterr().out)["details"]["changes"] == {"0414": {"from": "05", "to": "04"}}
