"""
Round robin schedule generation.
Builds rounds of disjoint matches with the circle method and computes
standings from scored matches. Pure functions, no database access.
"""

from typing import List, Dict, Optional, Iterable
from paddleup.utils.constants import BYE_ID, MIN_SINGLES_PLAYERS, MIN_DOUBLES_PLAYERS, MIN_TEAMS

FORMAT_SINGLES = "singles"
FORMAT_DOUBLES = "doubles"
FORMAT_TEAMS = "teams"
FORMATS = (FORMAT_SINGLES, FORMAT_DOUBLES, FORMAT_TEAMS)


# ============================================================================
# Helpers
# ============================================================================

def _bye_slot(index: int) -> Dict:
    return {"id": f"{BYE_ID}-{index}", "name": "BYE", "bye": True}


def _is_bye(participant: Dict) -> bool:
    # Matched by flag, not id prefix
    return participant.get("bye") is True


def _check_unique_ids(participants: Iterable[Dict]) -> None:
    seen = set()
    for p in participants:
        if p["id"] in seen:
            raise ValueError(f"Duplicate participant id: {p['id']}")
        seen.add(p["id"])


def circle_position(slot: int, rotation: int, size: int) -> int:
    """
    Index of the participant sitting in ``slot`` after ``rotation`` turns.

    Slot 0 stays fixed; the other size-1 slots rotate one place per round.
    """
    if slot == 0:
        return 0
    return ((slot + rotation - 1) % (size - 1)) + 1


def _empty_result() -> Dict:
    return {"matches": [], "rounds": [], "byes": {}, "round_count": 0, "total_possible_rounds": 0}


def _new_match(round_number: int, index: int, side1_key: str, side1, side2_key: str, side2) -> Dict:
    return {
        "id": f"r{round_number}m{index + 1}",
        "round": round_number,
        "court": index + 1,
        side1_key: side1,
        side2_key: side2,
        "score": {"team1": 0, "team2": 0},
        "completed": False,
    }


def assign_courts(round_matches: List[Dict], number_of_courts: Optional[int]) -> None:
    """
    Number courts 1..C within a round. Matches beyond C go to later waves
    of the same round, where court numbers start again at 1.
    """
    if not number_of_courts:
        for i, match in enumerate(round_matches):
            match["court"] = i + 1
            match["wave"] = 1
        return
    for i, match in enumerate(round_matches):
        match["court"] = i % number_of_courts + 1
        match["wave"] = i // number_of_courts + 1


def _finish(rounds: List[List[Dict]], byes: Dict[int, List], total_possible_rounds: int,
            number_of_courts: Optional[int]) -> Dict:
    for round_matches in rounds:
        assign_courts(round_matches, number_of_courts)
    return {
        "matches": [m for round_matches in rounds for m in round_matches],
        "rounds": rounds,
        "byes": byes,
        "round_count": len(rounds),
        "total_possible_rounds": total_possible_rounds,
    }


# ============================================================================
# Head-to-head (singles and set-partner teams)
# ============================================================================

def _head_to_head(entrants: List[Dict], max_rounds: Optional[int], number_of_courts: Optional[int],
                  side1_key: str, side2_key: str) -> Dict:
    slots = list(entrants)
    if len(slots) % 2 == 1:
        slots.append(_bye_slot(len(slots)))

    size = len(slots)
    total_possible_rounds = size - 1
    rounds_to_generate = total_possible_rounds if max_rounds is None else max_rounds

    rounds = []
    byes = {}
    for r in range(rounds_to_generate):
        # Rounds past a full cycle repeat the rotation
        rotation = r % total_possible_rounds
        round_number = r + 1
        round_matches = []
        for m in range(size // 2):
            home = slots[circle_position(m, rotation, size)]
            away = slots[circle_position(size - 1 - m, rotation, size)]
            if _is_bye(home) or _is_bye(away):
                sitting_out = away if _is_bye(home) else home
                byes.setdefault(round_number, []).append(sitting_out["id"])
                continue
            round_matches.append(
                _new_match(round_number, len(round_matches), side1_key, home, side2_key, away)
            )
        rounds.append(round_matches)

    return _finish(rounds, byes, total_possible_rounds, number_of_courts)


def generate_singles_round_robin(players: List[Dict], max_rounds: Optional[int] = None,
                                 number_of_courts: Optional[int] = None) -> Dict:
    """
    Singles round robin: every player meets every other player once per cycle.

    Args:
        players: [{"id": ..., "name": ...}, ...]
        max_rounds: Rounds to generate (default: one full cycle). Larger
            values repeat the cycle.
        number_of_courts: Courts available per wave

    Returns:
        Schedule dict (matches, rounds, byes, round_count, total_possible_rounds)
    """
    _check_unique_ids(players)
    if len(players) < MIN_SINGLES_PLAYERS:
        return _empty_result()
    return _head_to_head(players, max_rounds, number_of_courts, "player1", "player2")


def generate_team_round_robin(teams: List[Dict], max_rounds: Optional[int] = None,
                              number_of_courts: Optional[int] = None) -> Dict:
    """Set-partner round robin; each team is {"id", "player1", "player2"}."""
    _check_unique_ids(teams)
    if len(teams) < MIN_TEAMS:
        return _empty_result()
    return _head_to_head(teams, max_rounds, number_of_courts, "team1", "team2")


# ============================================================================
# Rotating-partner doubles
# ============================================================================

def generate_doubles_round_robin(players: List[Dict], max_rounds: Optional[int] = None,
                                 number_of_courts: Optional[int] = None) -> Dict:
    """
    Doubles round robin with rotating partners.

    The field is padded with byes to a multiple of four. Each round rotates
    the circle and pairs slot i with slot i + n/2, so partners come from
    opposite halves of the rotation. A match touching a bye is not played
    and its real players sit out that round.
    """
    _check_unique_ids(players)
    if len(players) < MIN_DOUBLES_PLAYERS:
        return _empty_result()

    slots = list(players)
    while len(slots) % 4 != 0:
        slots.append(_bye_slot(len(slots)))

    size = len(slots)
    half = size // 2
    total_possible_rounds = size - 1
    rounds_to_generate = total_possible_rounds if max_rounds is None else max_rounds

    rounds = []
    byes = {}
    for r in range(rounds_to_generate):
        rotation = r % total_possible_rounds
        round_number = r + 1
        order = [slots[circle_position(i, rotation, size)] for i in range(size)]

        round_matches = []
        for m in range(size // 4):
            base = m * 2
            p1 = order[base % half]
            p2 = order[base % half + half]
            p3 = order[(base + 1) % half]
            p4 = order[(base + 1) % half + half]
            group = (p1, p2, p3, p4)
            if any(_is_bye(p) for p in group):
                byes.setdefault(round_number, []).extend(p["id"] for p in group if not _is_bye(p))
                continue
            team1 = {"id": f"r{round_number}m{len(round_matches) + 1}t1", "player1": p1, "player2": p2}
            team2 = {"id": f"r{round_number}m{len(round_matches) + 1}t2", "player1": p3, "player2": p4}
            round_matches.append(
                _new_match(round_number, len(round_matches), "team1", team1, "team2", team2)
            )
        rounds.append(round_matches)

    return _finish(rounds, byes, total_possible_rounds, number_of_courts)


def generate_round_robin(rr_format: str, participants: List[Dict], max_rounds: Optional[int] = None,
                         number_of_courts: Optional[int] = None) -> Dict:
    """
    Dispatch to the generator for ``rr_format`` (singles, doubles or teams).

    Raises:
        ValueError: Unknown format, duplicate ids, or non-positive limits
    """
    if rr_format not in FORMATS:
        raise ValueError(f"Unknown round robin format: {rr_format}")
    if max_rounds is not None and max_rounds < 1:
        raise ValueError("max_rounds must be at least 1")
    if number_of_courts is not None and number_of_courts < 1:
        raise ValueError("number_of_courts must be at least 1")

    if rr_format == FORMAT_SINGLES:
        return generate_singles_round_robin(participants, max_rounds, number_of_courts)
    if rr_format == FORMAT_DOUBLES:
        return generate_doubles_round_robin(participants, max_rounds, number_of_courts)
    return generate_team_round_robin(participants, max_rounds, number_of_courts)


# ============================================================================
# Standings and progress
# ============================================================================

class Standing:
    """Running record for one team."""

    def __init__(self, team_id, team_name: str):
        self.team_id = team_id
        self.team_name = team_name
        self.played = 0
        self.won = 0
        self.lost = 0
        self.points_for = 0
        self.points_against = 0

    @property
    def point_diff(self) -> int:
        return self.points_for - self.points_against

    def record(self, scored: int, conceded: int) -> None:
        self.played += 1
        self.points_for += scored
        self.points_against += conceded
        if scored > conceded:
            self.won += 1
        elif conceded > scored:
            self.lost += 1

    def to_dict(self) -> Dict:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "played": self.played,
            "won": self.won,
            "lost": self.lost,
            "points_for": self.points_for,
            "points_against": self.points_against,
            "point_diff": self.point_diff,
        }


def _team_name(team: Dict) -> str:
    if team.get("name"):
        return team["name"]
    return f"{team['player1']['name']} & {team['player2']['name']}"


def calculate_standings(matches: List[Dict], teams: List[Dict]) -> List[Dict]:
    """
    Standings from completed team matches, sorted by wins then point
    differential. Ties in a match count as played but not won or lost.
    """
    standings = {team["id"]: Standing(team["id"], _team_name(team)) for team in teams}

    for match in matches:
        if not match.get("completed") or not match.get("team1") or not match.get("team2"):
            continue
        home = standings.get(match["team1"]["id"])
        away = standings.get(match["team2"]["id"])
        if home is None or away is None:
            continue
        score1 = match["score"]["team1"]
        score2 = match["score"]["team2"]
        home.record(score1, score2)
        away.record(score2, score1)

    ordered = sorted(standings.values(), key=lambda s: (-s.won, -s.point_diff))
    return [s.to_dict() for s in ordered]


def group_matches_by_round(matches: List[Dict]) -> Dict[int, List[Dict]]:
    by_round: Dict[int, List[Dict]] = {}
    for match in matches:
        by_round.setdefault(match["round"], []).append(match)
    return by_round


def is_round_robin_complete(matches: List[Dict]) -> bool:
    return len(matches) > 0 and all(m.get("completed") for m in matches)


def completed_match_count(matches: List[Dict]) -> int:
    return sum(1 for m in matches if m.get("completed"))
