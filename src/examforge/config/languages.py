"""Language packs for language-specific heuristics.

Each pack bundles the phrase lists and character classes that the
degeneracy detector and the content validator use for one target language,
plus the placeholder texts that normalization and the fallback document
insert. Packs are plain data; ``GenerationProfile.for_language`` copies them
into the injected configuration.
"""

from pydantic import BaseModel, ConfigDict, Field


class LanguagePack(BaseModel):
    """Heuristic vocabulary for one target language.

    Attributes:
        code: ISO 639-1 language code.
        loop_phrases: Phrases empirically seen right before generation loops.
        self_admitted_error_phrases: Phrases showing the model noticed its
            own answer was wrong and picked something anyway.
        visual_reference_words: Terms for images, pages, tables, diagrams.
        character_pattern: Regex character class expected in native text,
            or None when the language has no distinguishing characters.
        missing_explanation: Placeholder for absent explanations.
        fallback_topic: Topic used by the degraded fallback document.
        fallback_question: Prompt text of the degraded fallback item.
        fallback_answer: Answer text of the degraded fallback item.
        source_label: Label prefixing the source excerpt in the fallback item.
    """

    model_config = ConfigDict(strict=True, extra="forbid", frozen=True)

    code: str = Field(..., min_length=2, max_length=8)
    loop_phrases: tuple[str, ...] = Field(default_factory=tuple)
    self_admitted_error_phrases: tuple[str, ...] = Field(default_factory=tuple)
    visual_reference_words: tuple[str, ...] = Field(default_factory=tuple)
    character_pattern: str | None = None
    missing_explanation: str = "No explanation available"
    fallback_topic: str = "Text analysis"
    fallback_question: str = "Analyse the following text and write a summary:"
    fallback_answer: str = "Free-form answer based on the text"
    source_label: str = "Text"


FINNISH = LanguagePack(
    code="fi",
    loop_phrases=(
        "ja tehtävässä on useita potensseja",
        "ja tehtävässä",
        "Tässä tapauksessa",
    ),
    self_admitted_error_phrases=(
        "oikea vastaus on",
        "lähin vastaus",
        "valitaan se",
        "Tehtävässä on virheellinen",
        "Huom:",
        "Korjataan",
        "Oletetaan",
    ),
    visual_reference_words=(
        "kuva",
        "sivu",
        "taulukko",
        "kaavio",
        "kuvaaja",
        "koordinaatisto",
    ),
    character_pattern="[äöåÄÖÅ]",
    missing_explanation="Selvitys ei ole saatavilla",
    fallback_topic="Tekstin analyysi",
    fallback_question="Analysoi seuraava teksti ja kirjoita yhteenveto:",
    fallback_answer="Vapaa vastaus tekstin perusteella",
    source_label="Teksti",
)

ENGLISH = LanguagePack(
    code="en",
    loop_phrases=(
        "and the exercise has several",
        "In this case",
        "and the exercise",
    ),
    self_admitted_error_phrases=(
        "the correct answer is actually",
        "closest answer",
        "we choose",
        "the exercise is incorrect",
        "Note:",
        "Correcting",
        "Assuming",
    ),
    visual_reference_words=(
        "image",
        "picture",
        "page",
        "table",
        "diagram",
        "graph",
        "figure",
    ),
    character_pattern=None,
)

SWEDISH = LanguagePack(
    code="sv",
    loop_phrases=("och uppgiften", "I det här fallet"),
    self_admitted_error_phrases=(
        "rätt svar är egentligen",
        "närmaste svaret",
        "vi väljer",
        "Obs:",
        "Vi antar",
    ),
    visual_reference_words=("bild", "sida", "tabell", "diagram", "figur"),
    character_pattern="[äöåÄÖÅ]",
    missing_explanation="Förklaring saknas",
    fallback_topic="Textanalys",
    fallback_question="Analysera följande text och skriv en sammanfattning:",
    fallback_answer="Fritt svar baserat på texten",
)

LANGUAGE_PACKS: dict[str, LanguagePack] = {
    pack.code: pack for pack in (FINNISH, ENGLISH, SWEDISH)
}

DEFAULT_LANGUAGE = FINNISH.code


def get_language_pack(code: str) -> LanguagePack:
    """Look up the language pack for an ISO 639-1 code.

    Unknown codes fall back to the English pack, which has no character
    class requirement and therefore never penalizes unknown scripts.

    Args:
        code: ISO 639-1 language code (case-insensitive).

    Returns:
        Matching language pack.
    """
    return LANGUAGE_PACKS.get(code.lower(), ENGLISH)
