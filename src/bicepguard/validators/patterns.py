"""テンプレートテキストに対するパターンベースのスキャンロジック。"""

import logging
import re
from collections.abc import Iterable
from pathlib import Path

import yaml
from pydantic import ValidationError

from bicepguard.models.errors import MalformedInputError
from bicepguard.models.validation import PatternRule, RuleCategory, ValidationResult

logger = logging.getLogger(__name__)


def load_rules(rules_dir: Path) -> list[PatternRule]:
    """スキャンルールをYAMLファイルから読み込む。

    Raises:
        MalformedInputError: ディレクトリが存在しない、YAMLやルール定義が不正、
            またはルールの正規表現がコンパイルできない場合。
    """
    if not rules_dir.is_dir():
        raise MalformedInputError(f"Rules directory not found: {rules_dir}")

    rules: list[PatternRule] = []
    for rule_file in sorted(rules_dir.glob("*.yaml")):
        try:
            with open(rule_file, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise MalformedInputError(f"Invalid YAML in {rule_file}: {e}") from e
        if not isinstance(data, dict) or "rules" not in data:
            continue
        for rule_data in data["rules"] or []:
            try:
                rules.append(PatternRule.model_validate(rule_data))
            except ValidationError as e:
                raise MalformedInputError(f"Invalid rule in {rule_file}: {e}") from e

    for rule in rules:
        for expr in (rule.pattern, rule.unless):
            if expr is None:
                continue
            try:
                re.compile(expr)
            except re.error as e:
                raise MalformedInputError(f"Invalid pattern in rule '{rule.id}': {e}") from e

    logger.debug("loaded %d scan rules from %s", len(rules), rules_dir)
    return rules


class TemplateScanner:
    """PatternRuleに基づきテンプレートの生テキストを検査する。

    構文解析は行わないヒューリスティックであり、コメント内の一致による誤検知や
    難読化されたリテラルの見逃しがあり得る。
    """

    def __init__(self, rules: list[PatternRule]) -> None:
        self._rules = rules

    @classmethod
    def from_directory(cls, rules_dir: Path) -> "TemplateScanner":
        return cls(load_rules(rules_dir))

    @property
    def rules(self) -> list[PatternRule]:
        return list(self._rules)

    def require_categories(self, categories: Iterable[RuleCategory]) -> None:
        """各カテゴリのルールが1件以上読み込まれていることを確認する。

        Raises:
            MalformedInputError: ルールが1件もないカテゴリがある場合。
        """
        loaded = {rule.category for rule in self._rules}
        missing = [c for c in categories if c not in loaded]
        if missing:
            raise MalformedInputError(f"No scan rules loaded for: {', '.join(missing)}")

    @staticmethod
    def _search(expr: str, text: str) -> bool:
        return re.search(expr, text, re.IGNORECASE) is not None

    def find_violations(self, text: str, category: RuleCategory | None = None) -> list[PatternRule]:
        """違反したルールを定義順に返す。"""
        violations: list[PatternRule] = []
        for rule in self._rules:
            if category is not None and rule.category != category:
                continue

            found = self._search(rule.pattern, text)
            if rule.expected_presence:
                if not found:
                    violations.append(rule)
            elif found and not (rule.unless and self._search(rule.unless, text)):
                violations.append(rule)
        return violations

    def scan(
        self,
        text: str,
        test_name: str = "scan",
        category: RuleCategory | None = None,
    ) -> ValidationResult:
        """テキストをスキャンし、全違反を1件の結果に集約する。

        Args:
            text: 検査対象のテンプレートテキスト。
            test_name: 結果に付与するチェック名。
            category: 指定した場合はそのカテゴリのルールのみ適用する。

        Returns:
            違反がなければ成功、あれば全違反を列挙した失敗結果。
        """
        violations = self.find_violations(text, category)
        if not violations:
            return ValidationResult.success(test_name)

        error = "; ".join(f"[{rule.id}] {rule.description}" for rule in violations)
        logger.info("%s: %d rule violation(s)", test_name, len(violations))
        return ValidationResult.failure(test_name, error, "PolicyViolation")
