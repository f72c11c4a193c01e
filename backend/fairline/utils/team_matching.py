"""
backend/fairline/utils/team_matching.py

Purpose:
    Deterministic team-name comparison for the opt-in cross-provider event
    join. Feeds spell the same club differently ("Man Utd", "Manchester
    United FC", "Bayern München"); names are reduced to accent-free tokens
    before comparing.

Notes:
    - Provider event ids always win; names are only consulted when the join
      is enabled.
    - False positives are possible (two "United" sides), so a match also
      needs both sides of the fixture and a close kickoff.
"""

from __future__ import annotations

import re
import unicodedata

_WORD_RE = re.compile(r"[a-z0-9]+")

_NOISE_TOKENS = {"fc", "cf", "sc", "ac", "as", "ss", "us", "afc", "rcd", "club", "de", "the", "sv", "vfb", "vfl"}

_ABBREVIATIONS = {
    "utd": "united",
    "man": "manchester",
    "st": "saint",
    "mgladbach": "monchengladbach",
    "gladbach": "monchengladbach",
}

# Club-type words shared by many unrelated teams; never enough on their own.
_GENERIC_TOKENS = {
    "united", "city", "town", "real", "athletic", "atletico", "sporting", "rovers",
    "wanderers", "county", "albion", "borussia", "olympique", "racing", "inter",
}

_PREFIX_LEN = 4


def team_tokens(name: str | None) -> set[str]:
    """Lowercase, accent-free, abbreviation-expanded tokens of a team name."""
    decomposed = unicodedata.normalize("NFKD", name or "")
    plain = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()
    tokens = set()
    for word in _WORD_RE.findall(plain):
        word = _ABBREVIATIONS.get(word, word)
        if word in _NOISE_TOKENS or len(word) < 3:
            continue
        tokens.add(word)
    return tokens


def teams_match(name_a: str | None, name_b: str | None) -> bool:
    """Same club: a shared distinctive token, and no conflicting club-type word.

    "Manchester United" vs "Man Utd" matches; "Manchester United" vs
    "Manchester City" and "Newcastle United" vs "West Ham United" do not.
    """
    tokens_a = team_tokens(name_a)
    tokens_b = team_tokens(name_b)
    distinct_a = tokens_a - _GENERIC_TOKENS
    distinct_b = tokens_b - _GENERIC_TOKENS
    if not distinct_a or not distinct_b:
        return False

    generic_a = tokens_a & _GENERIC_TOKENS
    generic_b = tokens_b & _GENERIC_TOKENS
    if generic_a and generic_b and not generic_a & generic_b:
        return False

    if distinct_a & distinct_b:
        return True
    # "Dortmund" vs "Dortm." style truncations.
    prefixes_a = {t[:_PREFIX_LEN] for t in distinct_a if len(t) >= _PREFIX_LEN}
    prefixes_b = {t[:_PREFIX_LEN] for t in distinct_b if len(t) >= _PREFIX_LEN}
    return bool(prefixes_a & prefixes_b)


def fixtures_match(home_a: str | None, away_a: str | None, home_b: str | None, away_b: str | None) -> bool:
    """Both sides must match, in the same home/away orientation."""
    return teams_match(home_a, home_b) and teams_match(away_a, away_b)
