# Copyright 2025 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.

"""
QoS (DSCP / IPv4 TOS) argument parsing and formatting for PingScope.
"""

from typing import Dict

IPTOS_LOWDELAY = 0x10
IPTOS_THROUGHPUT = 0x08
IPTOS_RELIABILITY = 0x04
IPTOS_MINCOST = 0x02

_NAMED_QOS: Dict[str, int] = {
    "be": 0x00,
    "ef": 0xB8,  # 0x2E << 2
    "va": 0xB0,  # 0x2D << 2
    "lowdelay": IPTOS_LOWDELAY,
    "throughput": IPTOS_THROUGHPUT,
    "reliability": IPTOS_RELIABILITY,
    "mincost": IPTOS_MINCOST,
}

_DSCP_NAMES: Dict[int, str] = {
    0x00: "be",
    0x2E: "ef",
    0x2D: "va",
    0x08: "cs1",
    0x10: "cs2",
    0x18: "cs3",
    0x20: "cs4",
    0x28: "cs5",
    0x30: "cs6",
    0x38: "cs7",
}
for _class in range(1, 5):
    for _prec in range(1, 4):
        _DSCP_NAMES[(8 * _class) + (2 * _prec)] = f"af{_class}{_prec}"

_ECN_SUFFIXES = {0x01: ",ecn(1)", 0x02: ",ecn(0)", 0x03: ",ce"}

QOS_HELP = f"""Valid QoS arguments (option "-Q") are:

  Differentiated Services (IPv4 and IPv6, RFC 2474)

    be                     Best Effort (BE, default PHB).
    ef                     Expedited Forwarding (EF) PHB group (RFC 3246).
                           (low delay, low loss, low jitter)
    va                     Voice Admit (VA) DSCP (RFC 5865).
                           (capacity-admitted traffic)
    af[1-4][1-3]           Assured Forwarding (AF) PHB group (RFC 2597).
                           For example: "af12" (class 1, precedence 2)
    cs[0-7]                Class Selector (CS) PHB group (RFC 2474).
                           For example: "cs1" (priority traffic)

  Type of Service (IPv4, RFC 1349, obsolete)

    lowdelay     ({IPTOS_LOWDELAY:#04x})    minimize delay
    throughput   ({IPTOS_THROUGHPUT:#04x})    maximize throughput
    reliability  ({IPTOS_RELIABILITY:#04x})    maximize reliability
    mincost      ({IPTOS_MINCOST:#04x})    minimize monetary cost

  Specify manually

    0x00 - 0xff            Hexadecimal numeric value.
       0 -  255            Decimal numeric value.
"""


def parse_qos(text: str) -> int:
    """
    Parse a QoS argument into the byte placed in the TOS / traffic class field.

    Args:
        text: A DiffServ name, a legacy TOS name, or a number in 0..255

    Returns:
        The QoS byte

    Raises:
        ValueError: If the argument is not recognized
    """
    value = text.strip().lower()
    if value in _NAMED_QOS:
        return _NAMED_QOS[value]

    if value.startswith("af") and len(value) == 4:
        af_class, precedence = value[2], value[3]
        if af_class not in "1234" or precedence not in "123":
            raise ValueError(f'Invalid QoS argument: "{text}"')
        dscp = (8 * int(af_class)) + (2 * int(precedence))
        # The lower two bits carry ECN.
        return dscp << 2

    if value.startswith("cs") and len(value) == 3:
        if value[2] not in "01234567":
            raise ValueError(f'Invalid QoS argument: "{text}"')
        return int(value[2]) << 5

    try:
        number = int(value, 0)
    except ValueError as exc:
        raise ValueError(f'Invalid QoS argument: "{text}"') from exc
    if number < 0 or number > 0xFF:
        raise ValueError(f'Invalid QoS argument: "{text}"')
    return number


def format_qos(qos: int) -> str:
    """Render a received QoS byte as DSCP name plus ECN marker."""
    dscp = (qos >> 2) & 0x3F
    ecn_suffix = _ECN_SUFFIXES.get(qos & 0x03, "")
    name = _DSCP_NAMES.get(dscp)
    if name is None:
        return f"0x{dscp:02x}{ecn_suffix}"
    return f"{name}{ecn_suffix}"
