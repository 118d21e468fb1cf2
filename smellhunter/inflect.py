"""
English noun inflection for table and relationship names.

Rule order for ``pluralize`` (first match wins):

1. irregular table (``child`` -> ``children``)
2. uncountable table (``data``, ``information``, ...) -> unchanged
3. consonant + ``y`` -> ``ies``
4. sibilant ending (``s``, ``ss``, ``sh``, ``ch``, ``x``, ``z``) -> ``+es``
5. consonant + ``o`` -> ``+es``
6. ``f`` -> ``ves``
7. ``fe`` -> ``ves``
8. otherwise ``+s``

``singularize`` applies the mirror rules in the same order. Plurals whose
spelling is shared by two singular shapes (``-ies``, ``-ves``, ``-ses``,
``-zes``, ``-ches``) are settled by the small stem tables below. Both
functions preserve a leading capital letter.
"""

import re
from typing import Dict, FrozenSet, List, Mapping, Optional

VOWELS = frozenset("aeiou")

IRREGULAR_PLURALS: Mapping[str, str] = {
    "child": "children",
    "person": "people",
    "man": "men",
    "woman": "women",
    "tooth": "teeth",
    "foot": "feet",
    "mouse": "mice",
    "goose": "geese",
    "ox": "oxen",
    "criterion": "criteria",
    "medium": "media",
    "analysis": "analyses",
    "index": "indices",
    "matrix": "matrices",
    "vertex": "vertices",
    "cactus": "cacti",
    "status": "statuses",
    "quiz": "quizzes",
}

UNCOUNTABLE: FrozenSet[str] = frozenset({
    "audio", "data", "equipment", "feedback", "information", "knowledge",
    "metadata", "money", "news", "rice", "series", "sheep", "species",
    "staff", "traffic", "fish", "deer", "software", "hardware",
    "evidence", "furniture", "luggage", "police", "analytics",
})

SIBILANT_SUFFIXES = ("ss", "sh", "ch", "s", "x", "z")

# consonant+o nouns that take a plain "s"
O_EXCEPTIONS: FrozenSet[str] = frozenset({
    "photo", "piano", "halo", "logo", "memo", "video", "radio", "studio",
    "zero", "repo", "promo", "demo", "info", "todo", "combo",
})

# f/fe nouns that take a plain "s"
F_EXCEPTIONS: FrozenSet[str] = frozenset({
    "roof", "belief", "chef", "chief", "proof", "cliff", "ref",
    "safe", "cafe", "brief", "gif", "pdf", "href",
    "golf", "gulf", "turf", "surf", "serf", "reef", "spoof", "motif",
})

# Stems used to undo rules 6 and 7; any other "-ves" plural singularizes to "-ve".
F_NOUNS: FrozenSet[str] = frozenset({
    "wolf", "half", "leaf", "loaf", "calf", "shelf", "self", "thief",
    "sheaf", "elf", "scarf", "dwarf", "wharf", "hoof",
})
FE_NOUNS: FrozenSet[str] = frozenset({"knife", "wife", "life", "midwife", "housewife"})

# Nouns ending in a sibilant or "o" plus a silent "e"; their plural only adds "s".
E_NOUNS: FrozenSet[str] = frozenset({
    "cache", "niche", "headache", "avalanche", "moustache", "cliche", "quiche",
    "shoe", "toe", "canoe", "oboe", "hoe", "foe",
    "excuse", "abuse", "refuse", "fuse", "muse", "accuse", "ruse", "recluse",
})

# Singular nouns ending in "s" (their plural is "-ses" and must lose "es").
S_NOUNS: FrozenSet[str] = frozenset({
    "gas", "alias", "canvas", "atlas", "bias", "lens", "bus", "virus",
    "bonus", "campus", "census", "focus", "chorus", "circus", "class",
    "genius", "radius", "iris", "metropolis", "trellis",
})

# Singular nouns ending in "ie"; their "-ies" plural is not a consonant + "y" one.
IE_NOUNS: FrozenSet[str] = frozenset({
    "movie", "cookie", "zombie", "calorie", "rookie", "pie", "tie", "lie", "die",
    "hoodie", "selfie", "genie", "prairie", "brownie", "smoothie", "freebie", "newbie", "goalie",
})

# Vowel + "z" nouns; their plural is "-zes" and must lose "es".
Z_NOUNS: FrozenSet[str] = frozenset({"fez", "topaz"})

_SINGULAR_BY_PLURAL: Dict[str, str] = {v: k for k, v in IRREGULAR_PLURALS.items()}


def _match_case(original: str, word: str) -> str:
    if original[:1].isupper():
        return word[:1].upper() + word[1:]
    return word


def _is_consonant(ch: str) -> bool:
    return ch.isalpha() and ch.lower() not in VOWELS


def pluralize(word: str, irregular: Optional[Mapping[str, str]] = None,
              uncountable: Optional[FrozenSet[str]] = None) -> str:
    """Plural of a singular English noun."""
    if not word:
        return word
    irregular = IRREGULAR_PLURALS if irregular is None else irregular
    uncountable = UNCOUNTABLE if uncountable is None else uncountable
    lower = word.lower()

    if lower in irregular:
        return _match_case(word, irregular[lower])
    if lower in uncountable:
        return word
    if lower.endswith("y") and len(lower) > 1 and _is_consonant(lower[-2]):
        return word[:-1] + "ies"
    if lower.endswith(SIBILANT_SUFFIXES):
        return word + "es"
    if lower.endswith("o") and len(lower) > 1 and _is_consonant(lower[-2]) and lower not in O_EXCEPTIONS:
        return word + "es"
    if lower.endswith("f") and not lower.endswith("ff") and lower not in F_EXCEPTIONS:
        return word[:-1] + "ves"
    if lower.endswith("fe") and lower not in F_EXCEPTIONS:
        return word[:-2] + "ves"
    return word + "s"


def singularize(word: str, irregular: Optional[Mapping[str, str]] = None,
                uncountable: Optional[FrozenSet[str]] = None) -> str:
    """Singular of a plural English noun (mirror of ``pluralize``)."""
    if not word:
        return word
    if irregular is None:
        singular_by_plural = _SINGULAR_BY_PLURAL
    else:
        singular_by_plural = {v: k for k, v in irregular.items()}
    uncountable = UNCOUNTABLE if uncountable is None else uncountable
    lower = word.lower()

    if lower in singular_by_plural:
        return _match_case(word, singular_by_plural[lower])
    if lower in uncountable:
        return word
    if lower.endswith("ies") and lower[:-1] in IE_NOUNS:
        return word[:-1]
    if lower.endswith("ies") and len(lower) > 3 and _is_consonant(lower[-4]):
        return word[:-3] + "y"
    if lower.endswith("es") and len(lower) > 3:
        stem = lower[:-2]
        if stem + "e" in E_NOUNS:
            return word[:-1]
        if stem.endswith(("ss", "sh", "ch", "x", "zz")):
            return word[:-2]
        if stem.endswith("s"):
            if stem in S_NOUNS or (stem.endswith("us") and len(stem) > 2 and _is_consonant(stem[-3])):
                return word[:-2]
            return word[:-1]
        if stem.endswith("z"):
            return word[:-2] if stem in Z_NOUNS or _is_consonant(stem[-2]) else word[:-1]
        if stem.endswith("o") and _is_consonant(stem[-2]):
            return word[:-2]
    if lower.endswith("ves") and len(lower) > 3:
        stem = word[:-3]
        if (stem + "fe").lower() in FE_NOUNS:
            return stem + "fe"
        if (stem + "f").lower() in F_NOUNS:
            return stem + "f"
        return word[:-1]
    if lower.endswith("s") and not lower.endswith("ss") and len(lower) > 1:
        return word[:-1]
    return word


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case(name: str) -> str:
    """``OrderItem`` -> ``order_item``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def camel_segments(name: str) -> List[str]:
    """Split ``userPosts`` / ``UserPosts`` / ``user_posts`` into lowercase words."""
    return [part for part in snake_case(name).split("_") if part]


def table_name_for(class_name: str) -> str:
    """Conventional Eloquent table for a model class: snake_case, last word pluralized."""
    snake = snake_case(class_name.rpartition("\\")[2])
    head, sep, last = snake.rpartition("_")
    return head + sep + pluralize(last)

