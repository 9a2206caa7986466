"""
Live standings from an event's matches.

Pure and repeatable: only completed matches count; scheduled, active and
cancelled matches are ignored. Win = 3 points, draw = 1, loss = 0.
Ranking: points, then goal difference, then goals for (all descending).
Remaining ties keep configured team order.
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

from pickup.models import Match, MatchStatus, StandingRow, Team

logger = logging.getLogger(__name__)

WIN_POINTS = 3
DRAW_POINTS = 1


def _team_name(team: Team | str) -> str:
    return team.name if isinstance(team, Team) else team


def compute_standings(teams: Sequence[Team | str], matches: Iterable[Match]) -> list[StandingRow]:
    """
    One row per team, sorted by rank. Teams with no completed match get a zero row.
    A completed match naming a team outside `teams` still gets a row (after the
    configured teams, by name) so no result is silently lost.
    """
    rows: dict[str, StandingRow] = {}
    for t in teams:
        name = _team_name(t)
        rows.setdefault(name, StandingRow(team=name))
    configured = len(rows)

    extra: dict[str, StandingRow] = {}
    for m in matches:
        if m.status != MatchStatus.COMPLETED:
            continue
        home = rows.get(m.home_team) or extra.setdefault(m.home_team, StandingRow(team=m.home_team))
        away = rows.get(m.away_team) or extra.setdefault(m.away_team, StandingRow(team=m.away_team))
        home.played += 1
        away.played += 1
        home.goals_for += m.home_score
        home.goals_against += m.away_score
        away.goals_for += m.away_score
        away.goals_against += m.home_score
        if m.home_score > m.away_score:
            home.wins += 1
            away.losses += 1
        elif m.away_score > m.home_score:
            away.wins += 1
            home.losses += 1
        else:
            home.draws += 1
            away.draws += 1

    ordered = list(rows.values()) + [extra[name] for name in sorted(extra)]
    if extra:
        logger.debug("Standings include %d unconfigured teams: %s", len(extra), sorted(extra))
    # sorted() is stable: equal keys keep configured order
    result = sorted(ordered, key=StandingRow.sort_key)
    logger.debug("Computed standings for %d teams (%d configured)", len(result), configured)
    return result


def leader(standings: Sequence[StandingRow]) -> StandingRow | None:
    """Top row if it has played at least one match; the team offered 'declare winner'."""
    if not standings or standings[0].played == 0:
        return None
    return standings[0]
