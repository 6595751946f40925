"""
REELCUT shared constants

Values reused across the agents and the API live here as the single source.
"""
import os

# ─── Backend URL ───────────────────────────────────────────
BACKEND_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")
if BACKEND_BASE_URL and not BACKEND_BASE_URL.startswith("http"):
    BACKEND_BASE_URL = f"https://{BACKEND_BASE_URL}"

# ─── Provider endpoints ──────────────────────────────────────
PEXELS_PHOTO_SEARCH_URL = "https://api.pexels.com/v1/search"
ELEVENLABS_MODEL_ID = "eleven_multilingual_v2"

# ─── Edge TTS default voice per language ──────────────────
EDGE_DEFAULT_VOICES = {
    "es": "es-ES-AlvaroNeural",
    "en": "en-US-GuyNeural",
    "pt": "pt-BR-AntonioNeural",
    "fr": "fr-FR-HenriNeural",
    "de": "de-DE-ConradNeural",
    "it": "it-IT-DiegoNeural",
    "ko": "ko-KR-InJoonNeural",
    "ja": "ja-JP-KeitaNeural",
}

# ─── Placeholder image palettes (top, bottom) ──────────────
PLACEHOLDER_GRADIENTS = [
    ((102, 126, 234), (118, 75, 162)),
    ((17, 153, 142), (56, 239, 125)),
    ((252, 70, 107), (63, 94, 251)),
    ((255, 153, 102), (255, 94, 98)),
    ((31, 64, 55), (153, 242, 200)),
    ((44, 62, 80), (76, 161, 175)),
]

# ─── Keyword extraction ─────────────────────────────────────
KEYWORD_COUNT = 3

STOP_WORDS = frozenset("""
a an and are as at be been but by for from has have he her his i in is it its
of on or our she that the their them then there these they this to was we were
what when where which who will with you your into over under about after before
el la los las un una unos unas y o de del al en con por para que es son se su
sus lo le les como mas pero muy ya este esta estos estas ese esa eso hay fue ser
""".split())
