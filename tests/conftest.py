"""テスト共通フィクスチャ。"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from bicepguard.config import GuardConfig
from bicepguard.services.checks import CheckContext
from bicepguard.services.toolchain import BicepToolchain
from bicepguard.validators.patterns import TemplateScanner

MAIN_BICEP = """\
param location string = resourceGroup().location
param environmentName string
param appName string = 'orders'

resource identity 'Microsoft.ManagedIdentity/userAssignedIdentities@2023-01-31' = {
  name: 'id-${appName}-${environmentName}'
  location: location
}

resource vault 'Microsoft.KeyVault/vaults@2023-07-01' = {
  name: 'kv-${appName}-${environmentName}'
  location: location
}

resource app 'Microsoft.App/containerApps@2024-03-01' = {
  name: 'ca-${appName}-${environmentName}'
  location: location
  identity: {
    type: 'UserAssigned'
  }
  properties: {
    configuration: {
      secrets: [
        {
          name: 'db-password'
          keyVaultUrl: 'https://kv-${appName}.vault.azure.net/secrets/db-password'
        }
      ]
    }
  }
}
"""

RENDERED_TEMPLATE = """\
{
  "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#",
  "resources": [
    {"type": "Microsoft.ManagedIdentity/userAssignedIdentities", "name": "[format('id-{0}', parameters('appName'))]"},
    {"type": "Microsoft.KeyVault/vaults", "name": "[format('kv-{0}', parameters('appName'))]"},
    {"type": "Microsoft.App/containerApps", "identity": {"type": "UserAssigned"}}
  ]
}
"""

DEFAULT_PARAMETERS: dict[str, Any] = {
    "location": "japaneast",
    "environmentName": "dev",
    "vnetAddressPrefix": "10.0.0.0/16",
    "containerAppsSubnetPrefix": "10.0.0.0/23",
    "privateEndpointSubnetPrefix": "10.0.2.0/24",
    "minReplicas": 1,
    "maxReplicas": 3,
    "containerCpu": 0.5,
}


def write_parameters(path: Path, parameters: dict[str, Any]) -> None:
    """`{name: {"value": ...}}` 形式のパラメータファイルを書き出す。"""
    document = {
        "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentParameters.json#",
        "contentVersion": "1.0.0.0",
        "parameters": {name: {"value": value} for name, value in parameters.items()},
    }
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """main.bicep とパラメータファイルを配置したテスト用プロジェクト。"""
    root = tmp_path / "project"
    infra = root / "infra"
    infra.mkdir(parents=True)
    (infra / "main.bicep").write_text(MAIN_BICEP, encoding="utf-8")
    write_parameters(infra / "main.parameters.json", DEFAULT_PARAMETERS)
    return root


@pytest.fixture
def rules_dir() -> Path:
    """パッケージ同梱のスキャンルールディレクトリ。"""
    return Path(__file__).parent.parent / "src" / "bicepguard" / "rules"


@pytest.fixture
def scanner(rules_dir: Path) -> TemplateScanner:
    """同梱ルールを読み込んだTemplateScanner。"""
    return TemplateScanner.from_directory(rules_dir)


@pytest.fixture
def config(project_root: Path, rules_dir: Path) -> GuardConfig:
    """テスト用GuardConfig。"""
    return GuardConfig(project_root=project_root, rules_dir=rules_dir, tool_timeout=5.0)


@pytest.fixture
def toolchain() -> BicepToolchain:
    """テスト用BicepToolchain。"""
    return BicepToolchain(az_command="az", timeout=5.0)


@pytest.fixture
def check_context(config: GuardConfig, toolchain: BicepToolchain, scanner: TemplateScanner) -> CheckContext:
    """テスト用CheckContext。"""
    return CheckContext(config=config, toolchain=toolchain, scanner=scanner)


@pytest.fixture
def set_parameters(project_root: Path) -> Callable[..., None]:
    """デフォルト値に上書き・削除を適用してパラメータファイルを書き直す。"""

    def _set(remove: tuple[str, ...] = (), **overrides: Any) -> None:
        parameters = {k: v for k, v in DEFAULT_PARAMETERS.items() if k not in remove}
        parameters.update(overrides)
        write_parameters(project_root / "infra" / "main.parameters.json", parameters)

    return _set


@pytest.fixture
def rendered_template() -> str:
    """az bicep build の出力を模したARMテンプレート。"""
    return RENDERED_TEMPLATE
