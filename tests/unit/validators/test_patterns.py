"""TemplateScannerのユニットテスト。"""

from pathlib import Path

import pytest

from bicepguard.models.errors import MalformedInputError
from bicepguard.models.validation import PatternRule
from bicepguard.validators.patterns import TemplateScanner, load_rules

_CLEAN_SECURITY_TEXT = """
identity: { type: 'SystemAssigned' }
keyVaultUrl: 'https://kv-orders.vault.azure.net/secrets/db'
endpoint: 'https://orders.example.com'
"""


class TestLoadRules:
    def test_loads_packaged_rules(self, rules_dir: Path) -> None:
        rules = load_rules(rules_dir)
        ids = [r.id for r in rules]
        # ファイル名順（naming.yaml → security.yaml）
        assert ids == [
            "caf-resource-prefix",
            "hardcoded-secret",
            "insecure-http",
            "managed-identity-required",
            "key-vault-reference-required",
        ]

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(MalformedInputError, match="Rules directory not found"):
            load_rules(tmp_path / "nope")

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        (tmp_path / "bad.yaml").write_text("rules:\n  - id: [unclosed\n", encoding="utf-8")
        with pytest.raises(MalformedInputError, match="Invalid YAML"):
            load_rules(tmp_path)

    def test_invalid_rule_definition_raises(self, tmp_path: Path) -> None:
        (tmp_path / "bad.yaml").write_text("rules:\n  - id: no-pattern\n    description: d\n", encoding="utf-8")
        with pytest.raises(MalformedInputError, match="Invalid rule"):
            load_rules(tmp_path)

    def test_invalid_regex_raises(self, tmp_path: Path) -> None:
        (tmp_path / "bad.yaml").write_text(
            "rules:\n  - id: broken\n    description: d\n    pattern: '(unclosed'\n    expected_presence: false\n",
            encoding="utf-8",
        )
        with pytest.raises(MalformedInputError, match="broken"):
            load_rules(tmp_path)

    def test_ignores_files_without_rules(self, tmp_path: Path) -> None:
        (tmp_path / "empty.yaml").write_text("", encoding="utf-8")
        (tmp_path / "other.yaml").write_text("settings: {}\n", encoding="utf-8")
        assert load_rules(tmp_path) == []


class TestSecurityRules:
    def test_clean_text_passes(self, scanner: TemplateScanner) -> None:
        result = scanner.scan(_CLEAN_SECURITY_TEXT, test_name="security", category="security")
        assert result.passed is True
        assert result.error == ""

    def test_http_reference_fails(self, scanner: TemplateScanner) -> None:
        text = _CLEAN_SECURITY_TEXT + "callback: 'http://insecure.example.com'\n"
        result = scanner.scan(text, test_name="security", category="security")
        assert result.passed is False
        assert result.error_kind == "PolicyViolation"
        assert "[insecure-http]" in result.error

    def test_hardcoded_secret_without_reference_fails(self, scanner: TemplateScanner) -> None:
        rules = [r for r in scanner.rules if r.id == "hardcoded-secret"]
        result = TemplateScanner(rules).scan("adminPassword = 'P@ssw0rd!'")
        assert result.passed is False
        assert "[hardcoded-secret]" in result.error

    def test_hardcoded_secret_allowed_with_key_vault_reference(self, scanner: TemplateScanner) -> None:
        rules = [r for r in scanner.rules if r.id == "hardcoded-secret"]
        text = "token = 'placeholder'\nkeyVaultUrl: 'https://kv.vault.azure.net/secrets/token'"
        assert TemplateScanner(rules).scan(text).passed is True

    def test_missing_required_markers_are_all_reported(self, scanner: TemplateScanner) -> None:
        result = scanner.scan("http://plain.example.com", test_name="security", category="security")
        assert result.passed is False
        for rule_id in ("insecure-http", "managed-identity-required", "key-vault-reference-required"):
            assert f"[{rule_id}]" in result.error

    def test_match_is_case_insensitive(self, scanner: TemplateScanner) -> None:
        text = _CLEAN_SECURITY_TEXT + "url: 'HTTP://LEGACY.EXAMPLE.COM'"
        assert scanner.scan(text, category="security").passed is False


class TestNamingRules:
    @pytest.mark.parametrize(
        "text",
        [
            "name: 'ca-orders-dev'",
            "name: 'kv-orders'",
            "resource env 'Microsoft.App/managedEnvironments@2024-03-01' = { name: 'cae-main' }",
            "name: '${prefix}-${environmentName}'",
        ],
    )
    def test_prefix_or_templated_name_passes(self, scanner: TemplateScanner, text: str) -> None:
        assert scanner.scan(text, test_name="naming", category="naming").passed is True

    def test_no_prefix_fails(self, scanner: TemplateScanner) -> None:
        result = scanner.scan("name: 'ordersapp'", test_name="naming", category="naming")
        assert result.passed is False
        assert "[caf-resource-prefix]" in result.error

    def test_prefix_inside_word_does_not_count(self, scanner: TemplateScanner) -> None:
        assert scanner.scan("name: 'mykv-store'", category="naming").passed is False


class TestScanAggregation:
    def test_violations_listed_in_rule_order(self) -> None:
        rules = [
            PatternRule(id="first", description="one", pattern="a", expected_presence=False),
            PatternRule(id="second", description="two", pattern="zzz", expected_presence=True),
            PatternRule(id="third", description="three", pattern="b", expected_presence=False),
        ]
        result = TemplateScanner(rules).scan("a b", test_name="t")
        assert result.error == "[first] one; [second] two; [third] three"

    def test_category_filter(self) -> None:
        rules = [
            PatternRule(id="sec", description="s", pattern="x", expected_presence=True, category="security"),
            PatternRule(id="nam", description="n", pattern="y", expected_presence=True, category="naming"),
        ]
        scanner = TemplateScanner(rules)
        assert scanner.scan("x", category="security").passed is True
        assert scanner.scan("x", category="naming").passed is False

    def test_unless_only_applies_to_forbidden_rules(self) -> None:
        rule = PatternRule(id="req", description="r", pattern="needle", expected_presence=True, unless="hay")
        assert TemplateScanner([rule]).scan("hay").passed is False

    def test_scan_is_idempotent(self, scanner: TemplateScanner) -> None:
        text = "http://a.example.com name: 'ca-x'"
        assert scanner.scan(text) == scanner.scan(text)

    def test_empty_rule_set_passes(self) -> None:
        assert TemplateScanner([]).scan("anything").passed is True


class TestRequireCategories:
    def test_packaged_rules_cover_both_categories(self, scanner: TemplateScanner) -> None:
        scanner.require_categories(["security", "naming"])

    def test_missing_category_raises(self) -> None:
        scanner = TemplateScanner(
            [PatternRule(id="only-naming", description="d", pattern="ca-", expected_presence=True, category="naming")]
        )
        with pytest.raises(MalformedInputError, match="security"):
            scanner.require_categories(["security", "naming"])

    def test_empty_scanner_raises(self) -> None:
        with pytest.raises(MalformedInputError):
            TemplateScanner([]).require_categories(["naming"])
