"""
Rule-based detection of structurally regular PII and legal references

Every PatternDefinition carries a fixed score reflecting how specific its
shape is, and an optional language scope. Scores:

    >= 0.90  unambiguous format (email, UUID, IBAN, legal citations)
       0.85  specific, occasionally collides with other numbers
       0.75  shape-only guesses (capitalized word runs)
     < 0.70  loose shapes, detected but below the default threshold
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULT_LANGUAGE, HONORIFICS
from .merger import select_ranked
from .models import Entity, EntityType

logger = logging.getLogger(__name__)

# Replacement tokens produced by the anonymizer, e.g. [PERSON-A], [TECHNICAL_IDENTIFIER-3]
TOKEN_PATTERN = re.compile(r"\[[A-Z]+(?:_[A-Z]+)*-(?:[A-Z]+|\d+)\]")

Refiner = Callable[["re.Match"], Optional[Tuple[int, int]]]


@dataclass
class PatternDefinition:
    name: str
    entity_type: EntityType
    regex: str
    score: float
    languages: Optional[Tuple[str, ...]] = None
    flags: int = 0
    refine: Optional[Refiner] = None

    def applies_to(self, language: str) -> bool:
        return self.languages is None or language in self.languages


# ---------------------------------------------------------------------------
# Match refiners
# ---------------------------------------------------------------------------

def _min_digits(count: int) -> Refiner:
    def refine(match):
        if sum(c.isdigit() for c in match.group()) < count:
            return None
        return match.span()
    return refine


# Full dates with a four-digit year, e.g. 01.02.2023 or 2024-03-15
_DATE_SHAPE = re.compile(
    r"(?<!\d)(?:\d{1,2}[./-]\d{1,2}[./-]\d{4}|\d{4}[./-]\d{1,2}[./-]\d{1,2})(?!\d)"
)


def _refine_loose_phone(match):
    """Reject digit runs that are really date ranges or dates side by side"""
    value = match.group()
    if re.search(r"\s[-–]\s", value) or _DATE_SHAPE.search(value):
        return None
    return _min_digits(10)(match)


_NAME_STOPWORDS = {
    "the", "a", "an", "this", "that", "these", "those", "under", "in", "on", "at",
    "for", "by", "from", "to", "of", "and", "or", "but", "if", "when", "while",
    "after", "before", "since", "dear", "yours", "regards", "monday", "tuesday",
    "wednesday", "thursday", "friday", "saturday", "sunday", "january", "february",
    "march", "april", "may", "june", "july", "august", "september", "october",
    "november", "december", "plaintiff", "defendant", "claimant", "respondent",
    "appellant", "judge", "justice", "counsel", "attorney", "de", "het", "een",
    "der", "die", "das", "le", "la", "les"
}

_NON_NAME_WORDS = {
    "article", "section", "paragraph", "court", "act", "code", "regulation",
    "directive", "amendment", "convention", "treaty", "law", "statute", "union",
    "states", "state", "city", "county", "republic", "kingdom", "ministry",
    "department", "agency", "commission", "council", "parliament", "government",
    "university", "bank", "street", "avenue", "road"
}

_ORG_SUFFIXES = {
    "inc", "llc", "ltd", "corp", "corporation", "company", "co", "gmbh", "ag",
    "plc", "bv", "nv", "sa", "sarl", "llp", "lp", "group", "holding", "holdings"
}


def _refine_capitalized_name(match):
    """Strip sentence starters and reject phrases that are not names"""
    words = list(re.finditer(r"\S+", match.group()))
    while words and words[0].group().lower() in _NAME_STOPWORDS:
        words.pop(0)
    if len(words) < 2:
        return None
    lowered = [w.group().lower().strip(".,") for w in words]
    if any(w in _NON_NAME_WORDS or w in _NAME_STOPWORDS or w in HONORIFICS for w in lowered):
        return None
    if lowered[-1] in _ORG_SUFFIXES:
        return None
    base = match.start()
    return base + words[0].start(), base + words[-1].end()


# ---------------------------------------------------------------------------
# Pattern catalogue
# ---------------------------------------------------------------------------

_UPPER = "A-ZÀ-ÖØ-Þ"
_LOWER = "a-zß-öø-ÿ"
_NAME_WORD = rf"[{_UPPER}][{_LOWER}]+(?:-[{_UPPER}][{_LOWER}]+)?"
_ORG_SUFFIX = (
    r"(?:Inc\.?|LLC|L\.L\.C\.|Ltd\.?|Limited|Corp\.?|Corporation|Company|Co\.|GmbH|AG|"
    r"PLC|plc|B\.V\.|BV|N\.V\.|NV|S\.A\.|SARL|LLP|Group|Holdings?)"
)
_MONTHS_EN = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?|"
    r"Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
_ORDINAL_WORDS = (
    r"(?:First|Second|Third|Fourth|Fifth|Sixth|Seventh|Eighth|Ninth|Tenth|Eleventh|"
    r"Twelfth|Thirteenth|Fourteenth|Fifteenth|Sixteenth|Seventeenth|Eighteenth|"
    r"Nineteenth|Twentieth)"
)
_STATUTE_WORD = r"(?:Act|Code|Regulation|Directive|Convention|Treaty|Charter|Constitution)"

PATTERNS: List[PatternDefinition] = [

    # Contact details
    PatternDefinition(
        name="email",
        entity_type=EntityType.EMAIL,
        regex=r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
        score=0.95,
    ),
    PatternDefinition(
        name="phone_international",
        entity_type=EntityType.PHONE,
        regex=r"(?<![\w+])\+\d{1,3}[\s.-]?(?:\(\d{1,4}\)[\s.-]?)?\d{1,4}(?:[\s.-]?\d{2,4}){1,4}(?!\d)",
        score=0.85,
        refine=_min_digits(8),
    ),
    PatternDefinition(
        name="phone_north_american",
        entity_type=EntityType.PHONE,
        regex=r"(?<![\w(])(?:\(\d{3}\)\s?|\d{3}[-.\s])\d{3}[-.\s]\d{4}(?![\w-])",
        score=0.85,
    ),
    PatternDefinition(
        # Any digit run with separators; only trusted once it holds a full number
        name="phone_loose",
        entity_type=EntityType.PHONE,
        regex=r"(?<![\w+.-])\d[\d \t().-]{8,}\d(?![\w.-])",
        score=0.6,
        refine=_refine_loose_phone,
    ),

    # Identification numbers
    PatternDefinition(
        name="us_ssn",
        entity_type=EntityType.IDENTIFICATION,
        regex=r"\b\d{3}-\d{2}-\d{4}\b",
        score=0.9,
    ),
    PatternDefinition(
        name="iban",
        entity_type=EntityType.IDENTIFICATION,
        regex=r"\b[A-Z]{2}\d{2}(?: ?[A-Z0-9]{4}){2,7}(?: ?[A-Z0-9]{1,3})?\b",
        score=0.9,
    ),
    PatternDefinition(
        name="national_id",
        entity_type=EntityType.IDENTIFICATION,
        regex=r"\b[A-Z]{2}\d{6,12}\b",
        score=0.8,
    ),

    # Money
    PatternDefinition(
        name="money_symbol",
        entity_type=EntityType.MONEY,
        regex=r"[$€£]\s?\d+(?:[.,]\d{3})*(?:[.,]\d{1,2})?\b",
        score=0.9,
    ),
    PatternDefinition(
        name="money_code",
        entity_type=EntityType.MONEY,
        regex=r"\b\d+(?:[.,]\d{3})*(?:[.,]\d{1,2})?\s?(?:USD|EUR|GBP|CHF|euros?|dollars?)\b",
        score=0.9,
    ),

    # Dates
    PatternDefinition(
        name="date_iso",
        entity_type=EntityType.DATE,
        regex=r"\b(?:19|20)\d{2}[-/](?:0?[1-9]|1[0-2])[-/](?:0?[1-9]|[12]\d|3[01])\b",
        score=0.9,
    ),
    PatternDefinition(
        name="date_numeric",
        entity_type=EntityType.DATE,
        regex=r"\b(?:0?[1-9]|[12]\d|3[01])[-/.](?:0?[1-9]|[12]\d|3[01])[-/.](?:\d{4}|\d{2})\b",
        score=0.85,
    ),
    PatternDefinition(
        name="date_month_name_en",
        entity_type=EntityType.DATE,
        regex=(
            rf"\b(?:\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?)?{_MONTHS_EN}\.?"
            r"\s+(?:\d{1,2}(?:st|nd|rd|th)?,?\s+)?\d{4}\b"
        ),
        score=0.9,
    ),
    PatternDefinition(
        name="date_month_name_nl",
        entity_type=EntityType.DATE,
        regex=(
            r"\b\d{1,2}\s+(?:januari|februari|maart|april|mei|juni|juli|augustus|"
            r"september|oktober|november|december)\s+\d{4}\b"
        ),
        score=0.9,
        languages=("nl",),
        flags=re.IGNORECASE,
    ),
    PatternDefinition(
        name="date_month_name_de",
        entity_type=EntityType.DATE,
        regex=(
            r"\b\d{1,2}\.\s*(?:Januar|Jänner|Februar|März|April|Mai|Juni|Juli|August|"
            r"September|Oktober|November|Dezember)\s+\d{4}\b"
        ),
        score=0.9,
        languages=("de",),
    ),
    PatternDefinition(
        name="date_month_name_fr",
        entity_type=EntityType.DATE,
        regex=(
            r"\b(?:1er|\d{1,2})\s+(?:janvier|février|mars|avril|mai|juin|juillet|août|"
            r"septembre|octobre|novembre|décembre)\s+\d{4}\b"
        ),
        score=0.9,
        languages=("fr",),
        flags=re.IGNORECASE,
    ),

    # Case and docket numbers
    PatternDefinition(
        name="case_labelled",
        entity_type=EntityType.CASE,
        regex=r"\b(?:Case|Docket|File|Claim)\s+(?:No\.?|Nr\.?|Number|#)\s*:?\s*\d+(?:[-/]\d+)*\b",
        score=0.9,
    ),
    PatternDefinition(
        name="case_labelled_local",
        entity_type=EntityType.CASE,
        regex=r"\b(?:Zaaknummer|Zaaknr\.|Aktenzeichen|Az\.|Affaire\s+n[°o])\s*:?\s*[\w./-]*\d[\w./-]*",
        score=0.9,
        languages=("nl", "de", "fr"),
    ),
    PatternDefinition(
        name="docket_code",
        entity_type=EntityType.CASE,
        regex=r"\b\d{2}-[A-Z]{2,4}-\d{4,}\b",
        score=0.85,
    ),
    PatternDefinition(
        name="us_federal_docket",
        entity_type=EntityType.CASE,
        regex=r"\b\d:\d{2}-[a-z]{2}-\d{3,5}\b",
        score=0.85,
    ),
    PatternDefinition(
        name="cjeu_case",
        entity_type=EntityType.CASE,
        regex=r"\b[CT]-\d{1,4}/\d{2}\b",
        score=0.85,
    ),

    # Technical identifiers
    PatternDefinition(
        name="ipv4",
        entity_type=EntityType.TECHNICAL_IDENTIFIER,
        regex=r"\b(?:(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)\.){3}(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)\b",
        score=0.9,
    ),
    PatternDefinition(
        name="ipv6",
        entity_type=EntityType.TECHNICAL_IDENTIFIER,
        regex=r"\b(?:[0-9a-fA-F]{1,4}:){7}[0-9a-fA-F]{1,4}\b",
        score=0.9,
    ),
    PatternDefinition(
        name="uuid",
        entity_type=EntityType.TECHNICAL_IDENTIFIER,
        regex=r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b",
        score=0.95,
    ),
    PatternDefinition(
        name="mac_address",
        entity_type=EntityType.TECHNICAL_IDENTIFIER,
        regex=r"\b(?:[0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}\b",
        score=0.9,
    ),
    PatternDefinition(
        name="url",
        entity_type=EntityType.TECHNICAL_IDENTIFIER,
        regex=r"\b(?:https?://|www\.)[^\s<>\"']*[^\s<>\"'.,;:!?)\]]",
        score=0.85,
    ),

    # Names
    PatternDefinition(
        name="person_with_title",
        entity_type=EntityType.PERSON,
        regex=(
            r"\b(?:Mr|Mrs|Ms|Miss|Mx|Dr|Prof|Sir|Dame|Mme|Mlle|Herr|Frau|Dhr|Mevr)\.?"
            rf"\s+(?:[{_UPPER}]\.[ \t]*)*{_NAME_WORD}(?:[ \t]+{_NAME_WORD})*"
        ),
        score=0.85,
    ),
    PatternDefinition(
        name="person_initials",
        entity_type=EntityType.PERSON,
        regex=rf"\b(?:[{_UPPER}]\.\s?){{1,3}}{_NAME_WORD}\b",
        score=0.75,
    ),
    PatternDefinition(
        name="person_capitalized",
        entity_type=EntityType.PERSON,
        regex=rf"\b{_NAME_WORD}(?:[ \t]+{_NAME_WORD})+\b",
        score=0.75,
        refine=_refine_capitalized_name,
    ),
    PatternDefinition(
        name="organization_legal_form",
        entity_type=EntityType.ORGANIZATION,
        regex=rf"\b(?:[{_UPPER}][\w&'-]*[ \t]+(?:&[ \t]+)?){{1,4}}{_ORG_SUFFIX}(?!\w)",
        score=0.8,
    ),

    # Legal references, kept out of anonymization
    PatternDefinition(
        name="law_article",
        entity_type=EntityType.LAW,
        regex=(
            r"(?<!\w)(?:Articles?|Art\.|Artikel|Section|Sec\.|Paragraph|Para\.|§§?)"
            r"\s*\d+[a-z]?(?:\(\d+\))*(?:\s*\([a-z]\))*(?::\d+)?"
            r"(?:\s+(?:of\s+(?:the\s+)?)?"
            rf"(?:[A-Z][A-Za-z]*[A-Z][A-Za-z]*\b|(?:[A-Z][a-z]+\s+){{0,4}}{_STATUTE_WORD}\b))?"
        ),
        score=0.9,
    ),
    PatternDefinition(
        name="law_usc",
        entity_type=EntityType.LAW,
        regex=r"\b\d+\s+U\.S\.C\.?\s*§*\s*\d+[a-z]?(?:\([a-z0-9]+\))*",
        score=0.9,
    ),
    PatternDefinition(
        name="law_acronym",
        entity_type=EntityType.LAW,
        regex=r"\b(?:GDPR|AVG|UAVG|DSGVO|BDSG|RGPD|CCPA|CPRA|HIPAA|FERPA|ECHR|TFEU|TEU)\b",
        score=0.9,
    ),
    PatternDefinition(
        name="law_numbered_instrument",
        entity_type=EntityType.LAW,
        regex=(
            r"\b(?:Regulation|Directive|Decision|Act|Code)\s+(?:\((?:EU|EC|EEC)\)\s+)?"
            r"(?:No\.?\s+)?\d+(?:/\d+)*(?:/(?:EU|EC|EEC))?\b"
        ),
        score=0.9,
    ),
    PatternDefinition(
        name="law_named_statute",
        entity_type=EntityType.LAW,
        regex=rf"\b(?:[A-Z][a-z]+\s+){{1,5}}{_STATUTE_WORD}(?:\s+(?:of\s+)?\d{{4}})?\b",
        score=0.9,
    ),
    PatternDefinition(
        name="law_amendment",
        entity_type=EntityType.LAW,
        regex=rf"\b{_ORDINAL_WORDS}\s+Amendment\b",
        score=0.9,
    ),
    PatternDefinition(
        name="law_generic",
        entity_type=EntityType.LAW,
        regex=r"\b(?:Constitutional|Federal|State)\s+(?:Law|Statute|Regulation)\b",
        score=0.9,
    ),
    PatternDefinition(
        name="law_high_court",
        entity_type=EntityType.LAW,
        regex=(
            r"\b(?:Supreme Court(?: of the United States)?|European Court of Human Rights|"
            r"Court of Justice of the European Union|European Court of Justice|"
            r"International Court of Justice|High Court|Court of Appeal|Hoge Raad|"
            r"Raad van State|Bundesgerichtshof|Bundesverfassungsgericht|"
            r"Bundesverwaltungsgericht|Cour de cassation|Conseil d'[ÉE]tat|"
            r"Conseil constitutionnel)\b"
        ),
        score=0.9,
    ),
    PatternDefinition(
        name="law_ecli",
        entity_type=EntityType.LAW,
        regex=r"\bECLI:[A-Z]{2}:[A-Z0-9]+:\d{4}:[A-Za-z0-9.]*[A-Za-z0-9]",
        score=0.95,
    ),
]


class PatternDetector:
    """Regex detector for structured PII and the legal-reference whitelist

    Pure over its input: no state changes after construction.
    """

    def __init__(self, patterns: Optional[Sequence[PatternDefinition]] = None):
        self.patterns = list(PATTERNS if patterns is None else patterns)
        self._compiled = [(p, re.compile(p.regex, p.flags)) for p in self.patterns]

    def languages(self) -> List[str]:
        """Languages with language-specific patterns"""
        found = set()
        for pattern in self.patterns:
            found.update(pattern.languages or ())
        return sorted(found)

    def detect(self, text: str, language: str = DEFAULT_LANGUAGE) -> List[Entity]:
        """Detect entities, resolving overlaps between matches

        Args:
            text: Input text
            language: Language code selecting localized patterns

        Returns:
            Non-overlapping entities sorted by start offset
        """
        matches = self._find(text, language)
        entities = select_ranked(matches)
        logger.debug("Pattern detection: %d matches, %d kept", len(matches), len(entities))
        return entities

    def legal_references(self, text: str, language: str = DEFAULT_LANGUAGE) -> List[Entity]:
        """All raw legal-reference matches, overlapping ones included"""
        return sorted(self._find(text, language, {EntityType.LAW}), key=lambda e: e.start)

    def _find(self, text: str, language: str,
              entity_types: Optional[Iterable[EntityType]] = None) -> List[Entity]:
        if not text:
            return []
        wanted = set(entity_types) if entity_types is not None else None
        tokens = [m.span() for m in TOKEN_PATTERN.finditer(text)]

        found = []
        for pattern, regex in self._compiled:
            if wanted is not None and pattern.entity_type not in wanted:
                continue
            if not pattern.applies_to(language):
                continue
            for match in regex.finditer(text):
                span = pattern.refine(match) if pattern.refine else match.span()
                if span is None:
                    continue
                start, end = span
                if start >= end or _inside_token(start, end, tokens):
                    continue
                found.append(Entity(
                    entity_type=pattern.entity_type,
                    text=text[start:end],
                    start=start,
                    end=end,
                    confidence=pattern.score,
                    source="pattern"
                ))
        return found


def _inside_token(start: int, end: int, tokens: List[Tuple[int, int]]) -> bool:
    return any(start < t_end and t_start < end for t_start, t_end in tokens)


def replacement_token_spans(text: str) -> List[Tuple[int, int]]:
    """Spans of replacement tokens already present in *text*"""
    return [m.span() for m in TOKEN_PATTERN.finditer(text)]
