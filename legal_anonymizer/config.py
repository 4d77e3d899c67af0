"""
Configuration for legal PII detection and anonymization
"""

# GLiNER Model Configuration
# Any GLiNER model from HuggingFace works here
# Examples:
# - "urchade/gliner_multi_pii-v1" (default, multilingual PII)
# - "urchade/gliner_large-v2.1" (general purpose, more entity types)
# - "urchade/gliner_medium-v2.1" (faster, smaller)
# - "urchade/gliner_small-v2.1" (fastest, least accurate)
GLINER_MODEL_NAME = "urchade/gliner_multi_pii-v1"

# Labels asked from GLiNER. Only names, organizations and places are taken
# from the model; structured identifiers come from the pattern library.
DEFAULT_LABELS = [
    "person",
    "organization",
    "company",
    "location",
    "city",
    "country",
    "address"
]

# Map GLiNER labels to EntityType values
LABEL_MAPPING = {
    "person": "PERSON",
    "organization": "ORGANIZATION",
    "organization_name": "ORGANIZATION",
    "company": "ORGANIZATION",
    "location": "LOCATION",
    "city": "LOCATION",
    "country": "LOCATION",
    "address": "LOCATION"
}

# Replacement token, e.g. [PERSON-A] or [EMAIL-1]
TOKEN_FORMAT = "[{label}-{index}]"

# Recognizer processing parameters
DEFAULT_CHUNK_SIZE = 1400
DEFAULT_OVERLAP = 200
DEFAULT_RECOGNIZER_THRESHOLD = 0.3

# Anonymization defaults
DEFAULT_CONFIDENCE_THRESHOLD = 0.7
DEFAULT_LANGUAGE = "en"
DEFAULT_ENTITY_TYPES = [
    "PERSON",
    "ORGANIZATION",
    "LOCATION",
    "DATE",
    "EMAIL",
    "PHONE",
    "IDENTIFICATION"
]

# Language codes accepted in settings (all have a blank spaCy pipeline)
SUPPORTED_LANGUAGES = ["en", "nl", "de", "fr", "es", "it", "pt", "pl", "ru", "zh"]

# Titles stripped before names are compared
HONORIFICS = {
    "mr", "mrs", "ms", "miss", "mx", "dr", "prof", "sir", "dame", "lord", "lady",
    "rev", "hon", "mme", "mlle", "herr", "frau", "dhr", "mevr", "mw",
    "sr", "sra", "srta", "dott", "mag", "ing", "mgr"
}

# Batch detection
DEFAULT_MAX_WORKERS = 4

# False positives filter for recognizer output
DEFAULT_FILTER_FILE = "data/false_positives.json"
