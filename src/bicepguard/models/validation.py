"""バリデーション関連のデータモデル。"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ErrorKind = Literal[
    "MalformedInput",
    "MissingRequiredField",
    "PolicyViolation",
    "ExternalToolFailure",
    "Timeout",
    "UnexpectedFailure",
]

RuleCategory = Literal["security", "naming"]


class ValidationResult(BaseModel):
    """個別チェックの検証結果。生成後は変更しない。"""

    model_config = ConfigDict(frozen=True)

    test_name: str
    passed: bool
    error: str = ""
    error_kind: ErrorKind | None = None

    @classmethod
    def success(cls, test_name: str) -> "ValidationResult":
        return cls(test_name=test_name, passed=True)

    @classmethod
    def failure(cls, test_name: str, error: str, error_kind: ErrorKind) -> "ValidationResult":
        return cls(test_name=test_name, passed=False, error=error, error_kind=error_kind)


class PatternRule(BaseModel):
    """テンプレートスキャンルール定義（YAMLから読み込み）。

    expected_presence が False のルールは、pattern が一致した時点で違反となる。
    ただし unless パターンがテキスト内のどこかに一致する場合は違反としない。
    """

    model_config = ConfigDict(frozen=True)

    id: str
    description: str
    pattern: str
    expected_presence: bool
    unless: str | None = None
    category: RuleCategory = "security"


class RunSummary(BaseModel):
    """チェックスイート全体の実行結果。"""

    results: list[ValidationResult] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def summary_line(self) -> str:
        return f"Total: {self.total}, Passed: {self.passed}, Failed: {self.failed}"
