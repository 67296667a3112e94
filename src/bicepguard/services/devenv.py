"""Gitフックのインストールと開発環境の診断。"""

import logging
import stat
from datetime import datetime
from pathlib import Path

from bicepguard.models.errors import MalformedInputError
from bicepguard.models.tooling import DoctorReport, ToolStatus
from bicepguard.services.toolchain import BicepToolchain

logger = logging.getLogger(__name__)

PRE_COMMIT_HOOK = """#!/bin/bash
# bicepguard pre-commit hook: lints Bicep and JSON files before each commit.

set -e

PROJECT_ROOT="$(cd "$(dirname "${BASH_SOURCE[0]}")/../.." && pwd)"
cd "$PROJECT_ROOT"

if bicepguard lint --ci; then
    echo "Pre-commit validation passed!"
    exit 0
else
    echo "Pre-commit validation failed!"
    echo "Please fix the issues above before committing."
    exit 1
fi
"""

# (表示名, project_rootからの相対パス)
_PROJECT_FILES: tuple[tuple[str, str], ...] = (
    ("Bicep configuration", ".bicepconfig.json"),
    ("Azure Developer CLI configuration", "azure.yaml"),
    ("Main Bicep template", "infra/main.bicep"),
    ("Parameters file", "infra/main.parameters.json"),
)


def install_pre_commit_hook(repo_root: Path, now: datetime | None = None) -> Path:
    """pre-commitフックをインストールする。

    既存のフックは pre-commit.backup.<YYYYmmdd_HHMMSS> に退避する。

    Args:
        repo_root: Gitリポジトリのルート。
        now: バックアップ名に使う時刻。Noneの場合は現在時刻。

    Returns:
        インストールしたフックのパス。

    Raises:
        MalformedInputError: .git/hooks が存在しない場合。
    """
    hooks_dir = repo_root / ".git" / "hooks"
    if not hooks_dir.is_dir():
        raise MalformedInputError(f".git/hooks directory not found under {repo_root}. Are you in a Git repository?")

    hook = hooks_dir / "pre-commit"
    if hook.exists():
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        backup = hooks_dir / f"pre-commit.backup.{stamp}"
        logger.info("backing up existing pre-commit hook to %s", backup)
        hook.rename(backup)

    hook.write_text(PRE_COMMIT_HOOK, encoding="utf-8")
    hook.chmod(hook.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return hook


async def diagnose(root: Path, toolchain: BicepToolchain) -> DoctorReport:
    """必要なCLIツールとプロジェクトファイルの有無を確認する。"""
    report = DoctorReport()

    az_version = await toolchain.az_version()
    report.tools.append(
        ToolStatus(name="Azure CLI", available=az_version is not None, detail=az_version or toolchain.az_hint)
    )

    bicep_version = await toolchain.bicep_version()
    report.tools.append(
        ToolStatus(name="Bicep CLI", available=bicep_version is not None, detail=bicep_version or toolchain.bicep_hint)
    )

    for name, args in (("PowerShell", ("pwsh", "--version")), ("Node.js", ("node", "--version"))):
        version = await toolchain.version(*args)
        report.tools.append(ToolStatus(name=name, available=version is not None, required=False, detail=version or ""))

    for name, rel_path in _PROJECT_FILES:
        report.files.append(ToolStatus(name=name, available=(root / rel_path).is_file(), detail=rel_path))

    return report
