"""Guest OS type selection for hosts provisioned on oVirt."""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from ovirt_adapter.constants import DEFAULT_OS_TYPE, OS_TYPE_HOST_PARAM
from ovirt_adapter.models import HostDefinition, OSDescriptor
from ovirt_adapter.utils import is_blank, log

Candidate = Union[str, OSDescriptor]

FAMILY_SCORE = 100
MAJOR_BONUS = 10
MINOR_BONUS = 5
ARCH_BONUS = 10


def normalize_os_family(family: Optional[str]) -> str:
    lowered = (family or "").lower()
    if "redhat" in lowered or "centos" in lowered:
        return "rhel"
    return lowered


def normalize_arch(arch: Optional[str]) -> Optional[str]:
    if is_blank(arch):
        return None
    assert arch is not None
    lowered = arch.lower()
    return "x64" if lowered == "x86_64" else lowered


def _name(candidate: Candidate) -> str:
    return candidate.name if isinstance(candidate, OSDescriptor) else str(candidate or "")


def score_os_type(
    name: str,
    family: str,
    major: Optional[object] = None,
    minor: Optional[object] = None,
    arch: Optional[str] = None,
) -> float:
    if not family or family not in name:
        return 0
    score = FAMILY_SCORE + 1.0 / len(name)
    if not is_blank(major):
        major_token = f"{family}_{major}"
        if major_token in name:
            score += MAJOR_BONUS
            if not is_blank(minor) and f"{major_token}_{minor}" in name:
                score += MINOR_BONUS
    if arch and arch in name:
        score += ARCH_BONUS
    return score


def match_os_type(
    os_family: Optional[str],
    major: Optional[object],
    minor: Optional[object],
    arch: Optional[str],
    candidates: Iterable[Candidate],
) -> Optional[str]:
    """Pick the platform OS type name that best describes a host.

    Candidates not containing the normalized family score zero. When none
    match, the first candidate is returned. Among equal maximum scores the
    one appearing later in `candidates` wins.
    """
    family = normalize_os_family(os_family)
    arch_token = normalize_arch(arch)
    names = [name for name in (_name(c) for c in candidates) if name]
    if not names:
        return None

    ranked: List[Tuple[float, int, str]] = [
        (score_os_type(name, family, major, minor, arch_token), index, name) for index, name in enumerate(names)
    ]
    if not any(score > 0 for score, _, _ in ranked):
        log("DEBUG", f"No OS type matches family '{family}', falling back to {names[0]}")
        return names[0]

    best = max(ranked)
    log("DEBUG", "OS type ranking: " + ", ".join(f"{name}={score:.3f}" for score, _, name in sorted(ranked, reverse=True)))
    return best[2]


def determine_os_type(
    host: Optional[HostDefinition],
    candidates_provider: Callable[[], Sequence[Candidate]],
) -> Optional[str]:
    if host is None:
        return None
    explicit = host.params.get(OS_TYPE_HOST_PARAM)
    if not is_blank(explicit):
        return explicit
    if host.operatingsystem is None:
        return DEFAULT_OS_TYPE
    os_info = host.operatingsystem
    return match_os_type(os_info.name, os_info.major, os_info.minor, host.architecture, candidates_provider())
