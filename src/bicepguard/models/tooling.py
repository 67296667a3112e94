"""外部ツール実行・開発環境関連のデータモデル。"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class ToolResult(BaseModel):
    """外部CLI実行結果。"""

    success: bool
    command: str
    stdout: str
    stderr: str
    exit_code: int


class RenderedOutput(BaseModel):
    """az bicep build で生成されたARMテンプレート。"""

    template_path: Path
    text: str


LintTarget = Literal["bicep", "json"]


class LintFinding(BaseModel):
    """ファイル単位のLint結果。"""

    path: Path
    target: LintTarget
    passed: bool
    message: str = ""


class LintReport(BaseModel):
    """ワークスペースLintの結果。"""

    findings: list[LintFinding] = Field(default_factory=list)
    aborted: bool = False

    @property
    def failed(self) -> list[LintFinding]:
        return [f for f in self.findings if not f.passed]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


class ToolStatus(BaseModel):
    """開発ツールまたはプロジェクトファイルの検出状況。"""

    name: str
    available: bool
    required: bool = True
    detail: str = ""


class DoctorReport(BaseModel):
    """開発環境診断の結果。"""

    tools: list[ToolStatus] = Field(default_factory=list)
    files: list[ToolStatus] = Field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(s.available or not s.required for s in [*self.tools, *self.files])
