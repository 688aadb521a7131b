import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from party_aliases import PartyAliasRegistry, load_alias_file, suggest_aliases


def test_canonical_lookup_order():
    registry = PartyAliasRegistry(
        aliases={"ESA": "ESA MANAGEMENT LLC", "the ave": "THE AVE NASHVILLE LLC"},
        substrings={"extended stay": "ESA MANAGEMENT LLC"},
    )
    assert registry.canonical("esa") == "ESA MANAGEMENT LLC"
    assert registry.canonical("  The Ave ") == "THE AVE NASHVILLE LLC"
    assert registry.canonical("Extended Stay America #123") == "ESA MANAGEMENT LLC"
    assert registry.canonical(" Acme Hotels ") == "Acme Hotels"
    assert registry.canonical(None) == ""
    assert registry.same_party("ESA", "extended stay america")
    assert not registry.same_party("ESA", "Acme Hotels")
    assert len(registry) == 3


def test_load_alias_file_vendor_list(tmp_path):
    path = tmp_path / "aliases.yml"
    path.write_text(
        "vendors:\n"
        "  - name: Randstad USA LLC\n"
        "    aliases: [randstad, randstad north america]\n",
        encoding="utf-8",
    )
    mapping = load_alias_file(str(path))
    assert mapping == {
        "Randstad USA LLC": "Randstad USA LLC",
        "randstad": "Randstad USA LLC",
        "randstad north america": "Randstad USA LLC",
    }


def test_load_alias_file_flat_mapping(tmp_path):
    path = tmp_path / "aliases.json"
    path.write_text('{"hillside crossing": "HILLSIDE CROSSING LLC"}', encoding="utf-8")
    assert load_alias_file(str(path)) == {"hillside crossing": "HILLSIDE CROSSING LLC"}


def test_load_alias_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_alias_file(str(tmp_path / "missing.yml"))


def test_from_config_merges_file(tmp_path):
    path = tmp_path / "aliases.yml"
    path.write_text("randstad: Randstad USA LLC\n", encoding="utf-8")
    cfg = {"party_aliases": {"esa": "ESA MANAGEMENT LLC"}, "party_alias_file": str(path)}
    registry = PartyAliasRegistry.from_config(cfg)
    assert registry.canonical("Randstad") == "Randstad USA LLC"
    assert registry.canonical("ESA") == "ESA MANAGEMENT LLC"


def test_suggest_aliases_finds_close_names():
    registry = PartyAliasRegistry()
    suggestions = suggest_aliases(
        ["Acme Staffng Inc", "Acme Staffing Inc", "Completely Different"],
        ["Acme Staffing Inc", "Zeta Logistics"],
        registry,
    )
    assert [s["alias"] for s in suggestions] == ["Acme Staffng Inc"]
    assert suggestions[0]["canonical"] == "Acme Staffing Inc"
    assert suggestions[0]["score"] >= 0.85


def test_suggest_aliases_without_ledger_parties():
    assert suggest_aliases(["Acme"], [], PartyAliasRegistry()) == []
