"""ネットワークアドレス範囲のバリデーションロジック。"""

import logging
import re

from bicepguard.models.errors import MalformedInputError
from bicepguard.models.network import CidrBlock, NetworkConfig
from bicepguard.models.validation import ValidationResult

logger = logging.getLogger(__name__)

# 10進数表記のみ許可（先頭ゼロ・符号・空白は不可、"0" 単体は可）
_DECIMAL_RE = re.compile(r"0|[1-9][0-9]*")

_MIN_PREFIX_LENGTH = 8
_MAX_PREFIX_LENGTH = 32


def _parse_decimal(value: str) -> int | None:
    if not _DECIMAL_RE.fullmatch(value):
        return None
    return int(value)


def parse_cidr(text: str) -> CidrBlock:
    """IPv4 CIDR文字列をパースする。

    Args:
        text: "A.B.C.D/N" 形式の文字列。

    Returns:
        パース済みのCidrBlock。

    Raises:
        MalformedInputError: 形式・オクテット・プレフィックス長のいずれかが不正な場合。
    """
    parts = text.split("/")
    if len(parts) != 2:
        raise MalformedInputError(f"Malformed CIDR '{text}': expected exactly one '/'")

    address, prefix = parts
    address_parts = address.split(".")
    if len(address_parts) != 4:
        raise MalformedInputError(f"Malformed CIDR '{text}': expected four octets")

    octets: list[int] = []
    for part in address_parts:
        octet = _parse_decimal(part)
        if octet is None or octet > 255:
            raise MalformedInputError(f"Malformed CIDR '{text}': invalid octet '{part}'")
        octets.append(octet)

    prefix_length = _parse_decimal(prefix)
    if prefix_length is None or not _MIN_PREFIX_LENGTH <= prefix_length <= _MAX_PREFIX_LENGTH:
        raise MalformedInputError(f"Malformed CIDR '{text}': invalid prefix length '{prefix}'")

    return CidrBlock(octets=(octets[0], octets[1], octets[2], octets[3]), prefix_length=prefix_length)


def is_subnet_within(subnet: CidrBlock, vnet: CidrBlock) -> bool:
    """subnet のアドレス範囲全体が vnet の範囲に含まれるか判定する。"""
    return vnet.network_address <= subnet.network_address and subnet.broadcast_address <= vnet.broadcast_address


def validate_network_config(config: NetworkConfig, test_name: str = "network") -> ValidationResult:
    """VNetと2つのサブネットのプレフィックスを検証する。

    パース→包含チェックの順に実行し、最初の違反で打ち切る。例外は送出しない。
    """
    fields = (
        ("vnet_prefix", config.vnet_prefix),
        ("subnet_prefix", config.subnet_prefix),
        ("private_endpoint_subnet_prefix", config.private_endpoint_subnet_prefix),
    )

    blocks: dict[str, CidrBlock] = {}
    for field, value in fields:
        try:
            blocks[field] = parse_cidr(value)
        except MalformedInputError as e:
            logger.info("network check failed on %s: %s", field, e)
            return ValidationResult.failure(test_name, f"{field}: {e}", "MalformedInput")

    vnet = blocks["vnet_prefix"]
    for field in ("subnet_prefix", "private_endpoint_subnet_prefix"):
        subnet = blocks[field]
        if not is_subnet_within(subnet, vnet):
            return ValidationResult.failure(
                test_name,
                f"{field}: {subnet} is not within VNet range {vnet}",
                "PolicyViolation",
            )

    return ValidationResult.success(test_name)
