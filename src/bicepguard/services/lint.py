"""ワークスペース内のBicep・JSONファイルをLintするサービス。"""

import json
import logging
from pathlib import Path

from bicepguard.models.errors import BicepGuardError, ExternalToolFailureError
from bicepguard.models.tooling import LintFinding, LintReport
from bicepguard.services.checks import describe_error
from bicepguard.services.toolchain import BicepToolchain

logger = logging.getLogger(__name__)

_BICEP_GLOBS = ("infra/*.bicep", "infra/modules/*.bicep")
_JSON_GLOBS = ("*.json", "infra/*.json")


class WorkspaceLinter:
    """infra/ 配下のBicepとプロジェクトのJSONファイルを検査する。"""

    def __init__(self, root: Path, toolchain: BicepToolchain) -> None:
        self._root = root
        self._toolchain = toolchain

    def _collect(self, patterns: tuple[str, ...]) -> list[Path]:
        files: list[Path] = []
        for pattern in patterns:
            # シェルのglobと同様にドットファイルは対象外
            files.extend(p for p in sorted(self._root.glob(pattern)) if p.is_file() and not p.name.startswith("."))
        return files

    async def _lint_bicep(self, path: Path) -> LintFinding:
        try:
            await self._toolchain.lint(path)
        except ExternalToolFailureError as e:
            return LintFinding(path=path, target="bicep", passed=False, message=e.stderr or str(e))
        except BicepGuardError as e:
            return LintFinding(path=path, target="bicep", passed=False, message=describe_error(e))
        return LintFinding(path=path, target="bicep", passed=True)

    @staticmethod
    def _lint_json(path: Path) -> LintFinding:
        try:
            json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return LintFinding(path=path, target="json", passed=False, message=str(e))
        return LintFinding(path=path, target="json", passed=True)

    async def run(self, ci: bool = False) -> LintReport:
        """Lintを実行する。

        Args:
            ci: Trueの場合、最初の失敗で打ち切る。

        Returns:
            ファイルごとの結果を含むLintReport。
        """
        report = LintReport()

        for path in self._collect(_BICEP_GLOBS):
            logger.debug("linting %s", path)
            finding = await self._lint_bicep(path)
            report.findings.append(finding)
            if ci and not finding.passed:
                report.aborted = True
                return report

        for path in self._collect(_JSON_GLOBS):
            logger.debug("validating %s", path)
            finding = self._lint_json(path)
            report.findings.append(finding)
            if ci and not finding.passed:
                report.aborted = True
                return report

        return report
