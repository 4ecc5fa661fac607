"""Packet routing — which packets a submitted intake should produce."""

from __future__ import annotations

import enum
import logging
from typing import Any, Mapping

logger = logging.getLogger(__name__)


class ClientType(str, enum.Enum):
    """Intake path a client followed."""

    NUTRITION_ONLY = "NUTRITION_ONLY"
    WORKOUT_ONLY = "WORKOUT_ONLY"
    FULL_PROGRAM = "FULL_PROGRAM"
    ATHLETE_PERFORMANCE = "ATHLETE_PERFORMANCE"
    YOUTH = "YOUTH"
    GENERAL_WELLNESS = "GENERAL_WELLNESS"
    SPECIAL_SITUATION = "SPECIAL_SITUATION"


class PacketType(str, enum.Enum):
    """Kinds of generated document."""

    INTRO = "INTRO"
    NUTRITION = "NUTRITION"
    WORKOUT = "WORKOUT"
    PERFORMANCE = "PERFORMANCE"
    YOUTH = "YOUTH"
    WELLNESS = "WELLNESS"
    RECOVERY = "RECOVERY"


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    return [str(value)]


def determine_required_packets(
    client_type: str,
    responses: Mapping[str, Any],
) -> list[PacketType]:
    """Return the packet types to generate, in a stable order.

    Unknown client types get the introductory packet only.
    """
    try:
        ct = ClientType(client_type)
    except ValueError:
        logger.warning("Unknown client type %r; routing to INTRO packet", client_type)
        return [PacketType.INTRO]

    packets: list[PacketType] = []
    if ct == ClientType.NUTRITION_ONLY:
        packets.append(PacketType.NUTRITION)
    elif ct == ClientType.WORKOUT_ONLY:
        packets.append(PacketType.WORKOUT)
    elif ct == ClientType.FULL_PROGRAM:
        packets += [PacketType.NUTRITION, PacketType.WORKOUT]
    elif ct == ClientType.ATHLETE_PERFORMANCE:
        packets.append(PacketType.PERFORMANCE)
        if str(responses.get("include-nutrition", "")).lower() == "yes":
            packets.append(PacketType.NUTRITION)
    elif ct == ClientType.YOUTH:
        packets.append(PacketType.YOUTH)
    elif ct == ClientType.GENERAL_WELLNESS:
        packets.append(PacketType.WELLNESS)
        focus = _as_list(responses.get("wellness-focus"))
        if any(f in focus for f in ("strength", "endurance", "mobility")):
            packets.append(PacketType.WORKOUT)
        if any(f in focus for f in ("weight", "energy")):
            packets.append(PacketType.NUTRITION)
    elif ct == ClientType.SPECIAL_SITUATION:
        packets.append(PacketType.RECOVERY)
        goals = " ".join(_as_list(responses.get("recovery-goals"))).lower()
        if "nutrition" in goals:
            packets.append(PacketType.NUTRITION)
    return packets
