"""
Random player pairing for a session.

Deliberately non-deterministic and kept apart from billing: nothing here
feeds into any cost calculation.
"""
import random


def pair_players(players, rng=None):
    """
    Shuffle players and pair them off. With an odd count the last player
    joins the final pair (a group of three); a single player forms a group
    of one. Pass ``rng`` (a random.Random) for repeatable output.
    """
    rng = rng or random.Random()
    shuffled = list(players)
    rng.shuffle(shuffled)

    groups = []
    for i in range(0, len(shuffled), 2):
        if i + 1 < len(shuffled):
            groups.append([shuffled[i], shuffled[i + 1]])
        elif groups:
            groups[-1].append(shuffled[i])
        else:
            groups.append([shuffled[i]])
    return groups
