"""Phrase banks for position descriptions."""

# Outcome bands, each with a singular and a plural verb form
OUTCOME = {
    "overwhelming": {
        "sing": ("gives an overwhelming winning advantage", "yields a crushing advantage"),
        "plur": ("give an overwhelming winning advantage", "yield a crushing advantage"),
    },
    "win": {
        "sing": ("gives a winning advantage", "secures a clear win"),
        "plur": ("give a winning advantage", "secure a clear win"),
    },
    "advantage": {
        "sing": ("offers an advantage", "creates pressure"),
        "plur": ("offer an advantage", "create pressure"),
    },
    "balance": {
        "sing": ("holds equality", "maintains the balance"),
        "plur": ("hold equality", "maintain the balance"),
    },
    "hold": {
        "sing": ("defends the position", "clings on"),
        "plur": ("defend the position", "cling on"),
    },
    "stay": {
        "sing": ("keeps the game alive", "stays in the game"),
        "plur": ("keep the game alive", "stay in the game"),
    },
}

# Findability tiers: hard, medium, easy
FINDABILITY = (
    (
        "hard for human players to find",
        "very tough for humans to spot",
        "challenging for most players to see",
    ),
    (
        "findable for skilled players",
        "within reach for experienced players",
        "findable for strong players",
    ),
    (
        "straightforward for players across skill levels to find",
        "easy for players of all strengths to spot",
        "obvious to most players",
    ),
)

CAREFUL = ("Tread carefully", "Be alert", "Stay sharp", "Watch out")
TEMPTING_INTRO = ("There", "Be careful, as there", "In this position there")
TEMPT_ADJ = ("tempting", "enticing", "natural-looking")
TEMPT_NOUN = ("alternatives", "ways to go wrong")

NO_LEGAL_MOVES = "No legal moves available."
