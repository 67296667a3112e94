"""チェックスイートを順次実行し、結果を集約するサービス。"""

import logging
from collections.abc import Sequence

from bicepguard.config import GuardConfig
from bicepguard.models.validation import RuleCategory, RunSummary, ValidationResult
from bicepguard.services.checks import DEFAULT_CHECKS, Check, CheckContext, describe_error
from bicepguard.services.toolchain import BicepToolchain
from bicepguard.validators.patterns import TemplateScanner

logger = logging.getLogger(__name__)

_SCAN_CATEGORIES: tuple[RuleCategory, ...] = ("security", "naming")


class CheckRunner:
    """チェックを固定順で1つずつ実行する。

    個別チェックの失敗で実行全体を中断することはない。
    """

    def __init__(self, checks: Sequence[Check] = DEFAULT_CHECKS) -> None:
        self._checks = list(checks)

    @property
    def check_names(self) -> list[str]:
        return [c.name for c in self._checks]

    async def run(self, ctx: CheckContext) -> RunSummary:
        """全チェックを実行し、RunSummaryを返す。

        無効化されたカテゴリのチェックはスキップし、集計にも含めない。

        Args:
            ctx: 各チェックが共有する実行コンテキスト。

        Returns:
            チェックごとの結果を実行順に保持したRunSummary。
        """
        results: list[ValidationResult] = []
        for check in self._checks:
            if not ctx.config.is_enabled(check.name):
                logger.debug("skipping disabled check: %s", check.name)
                continue
            try:
                result = await check(ctx)
            except Exception as e:
                logger.exception("check %s raised unexpectedly", check.name)
                result = ValidationResult.failure(check.name, describe_error(e), "UnexpectedFailure")
            logger.info("%s: %s", check.name, "passed" if result.passed else "failed")
            results.append(result)

        summary = RunSummary(results=results)
        logger.info(summary.summary_line())
        return summary


def build_context(config: GuardConfig) -> CheckContext:
    """設定からツールチェーンとスキャナを組み立ててコンテキストを作る。

    Raises:
        MalformedInputError: ルールを読み込めない、または有効なスキャンカテゴリのルールがない場合。
    """
    toolchain = BicepToolchain(az_command=config.az_command, timeout=config.tool_timeout)
    scanner = TemplateScanner.from_directory(config.rules_dir)
    scanner.require_categories(c for c in _SCAN_CATEGORIES if config.is_enabled(c))
    return CheckContext(config=config, toolchain=toolchain, scanner=scanner)


async def run_suite(config: GuardConfig, checks: Sequence[Check] = DEFAULT_CHECKS) -> RunSummary:
    """設定に従ってチェックスイートを実行する。"""
    return await CheckRunner(checks).run(build_context(config))
