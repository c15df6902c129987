# chartier/constants.py

# Rating buckets, best to worst.
TIERS = ("goat", "god", "enjoyable", "mediocre", "weak")

TIER_LABELS = {
    "goat": ("GOAT", "Greatest of All Time"),
    "god": ("GOD", "Exceptional character"),
    "enjoyable": ("Enjoyable", "Good and entertaining"),
    "mediocre": ("Mediocre", "Average, nothing special"),
    "weak": ("Weak", "Below average"),
}

MEDIA_TYPES = ("movie", "series", "anime")

SOURCE_TMDB = "tmdb"
SOURCE_JIKAN = "jikan"
SOURCES = (SOURCE_TMDB, SOURCE_JIKAN)

REVIEW_SORTS = ("newest", "likes")
CHARACTER_SORTS = ("trending", "popular", "recent")

# Added to Character.trending_score for every new like.
LIKE_TRENDING_DELTA = 1.0

RECENT_ACTIVITY_WINDOW_HOURS = 24


def empty_distribution() -> dict:
    return {tier: 0 for tier in TIERS}
