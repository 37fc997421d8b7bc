"""
Localized user-facing strings for the supported languages (en, am, ti, om).
"""

from typing import Dict, Iterable

DEFAULT_LANGUAGE = "en"

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "am": "Amharic (አማርኛ)",
    "ti": "Tigrigna (ትግርኛ)",
    "om": "Afan Oromo",
}

RESPONSE_DIRECTIVES: Dict[str, str] = {
    "en": "Respond in English.",
    "am": "Respond in Amharic (አማርኛ), using Ge'ez script.",
    "ti": "Respond in Tigrigna (ትግርኛ), using Ge'ez script.",
    "om": "Respond in Afan Oromo, using Latin script (Qubee).",
}

MESSAGES: Dict[str, Dict[str, str]] = {
    "provider_unavailable": {
        "en": "I apologize, but the AI assistant is temporarily unavailable. Please try again shortly, "
              "or consult your local clergy or course materials.",
        "am": "ይቅርታ፣ የAI ረዳቱ ለጊዜው አይገኝም። እባክዎ ትንሽ ቆይተው እንደገና ይሞክሩ ወይም የአካባቢዎን ካህን ያማክሩ።",
        "ti": "ይቕሬታ፣ እቲ ናይ AI ሓጋዚ ንግዚኡ ኣይርከብን እዩ። በጃኹም ድሕሪ ቁሩብ ደጊምኩም ፈትኑ ወይ ንካህን ከባቢኹም ተወከሱ።",
        "om": "Dhiifama, gargaaraan AI yeroof hin argamu. Maaloo booda irra deebi'aa yaalaa, "
              "yookaan luba naannoo keessanii mariisisaa.",
    },
    "internal_error": {
        "en": "I apologize, something went wrong while preparing your answer. Please try again later.",
        "am": "ይቅርታ፣ መልስዎን በማዘጋጀት ላይ ችግር ተፈጥሯል። እባክዎ ቆይተው እንደገና ይሞክሩ።",
        "ti": "ይቕሬታ፣ መልሲ ኣብ ምድላው ጸገም ኣጋጢሙ። በጃኹም ጸኒሕኩም ደጊምኩም ፈትኑ።",
        "om": "Dhiifama, deebii keessan qopheessuu irratti rakkoon uumame. Maaloo booda irra deebi'aa yaalaa.",
    },
    "too_short": {
        "en": "Your question seems too brief. Please provide more details for a better response.",
        "am": "ጥያቄዎ በጣም አጭር ይመስላል። ለተሻለ መልስ እባክዎ ተጨማሪ ዝርዝር ያቅርቡ።",
        "ti": "ሕቶኹም ኣዝዩ ሓጺር ይመስል። ንዝበለጸ መልሲ በጃኹም ተወሳኺ ዝርዝር ሃቡ።",
        "om": "Gaaffiin keessan baay'ee gabaabaa fakkaata. Deebii fooyya'aa argachuuf maaloo bal'inaan ibsaa.",
    },
    "off_topic": {
        "en": "Your question might be off-topic. Please focus on Orthodox Christian teachings and practices.",
        "am": "ጥያቄዎ ከርዕሱ ውጭ ሊሆን ይችላል። እባክዎ በኦርቶዶክስ ክርስትና ትምህርትና ሥርዓት ላይ ያተኩሩ።",
        "ti": "ሕቶኹም ካብቲ ኣርእስቲ ወጻኢ ክኸውን ይኽእል። በጃኹም ኣብ ትምህርትን ስርዓትን ኦርቶዶክሳዊት ክርስትና ኣተኩሩ።",
        "om": "Gaaffiin keessan mata duree ala ta'uu danda'a. "
              "Maaloo barsiisaa fi sirna Kiristaana Ortodoksii irratti xiyyeeffadhaa.",
    },
    "sensitive_review": {
        "en": "Your question touches on sensitive topics. It will be reviewed by church authorities "
              "to ensure doctrinal accuracy.",
        "am": "ጥያቄዎ ስሱ ጉዳዮችን ይመለከታል። የትምህርተ ሃይማኖት ትክክለኛነትን ለማረጋገጥ በቤተ ክርስቲያን አባቶች ይገመገማል።",
        "ti": "ሕቶኹም ተንከፍቲ ጉዳያት ይትንክፍ። ትኽክለኛነት ትምህርተ ሃይማኖት ንምርግጋጽ ብኣቦታት ቤተ ክርስቲያን ክግምገም እዩ።",
        "om": "Gaaffiin keessan dhimmoota miira tuqan ilaala. Sirrummaa barsiisaa amantii mirkaneessuuf "
              "abbootii waldaa kiristaanaatiin ni ilaalama.",
    },
    "blocked": {
        "en": "This request cannot be answered here. It has been forwarded to moderators for review.",
        "am": "ይህ ጥያቄ እዚህ መልስ ሊሰጠው አይችልም። ለግምገማ ወደ አወያዮች ተልኳል።",
        "ti": "እዚ ሕቶ ኣብዚ መልሲ ክወሃቦ ኣይክእልን። ንግምገማ ናብ ኣወሃሃድቲ ተላኢኹ ኣሎ።",
        "om": "Gaaffiin kun as deebii argachuu hin danda'u. Ilaalchaaf gara to'attootaatti ergameera.",
    },
    "low_alignment": {
        "en": "This answer may not fully reflect Ethiopian Orthodox Tewahedo teaching and has been sent for review.",
        "am": "ይህ መልስ የኢትዮጵያ ኦርቶዶክስ ተዋሕዶ ትምህርትን ሙሉ በሙሉ ላያንጸባርቅ ይችላል፤ ለግምገማ ተልኳል።",
        "ti": "እዚ መልሲ ትምህርቲ ኢትዮጵያዊት ኦርቶዶክስ ተዋሕዶ ምሉእ ብምሉእ ዘየንጸባርቕ ክኸውን ይኽእል፤ ንግምገማ ተላኢኹ ኣሎ።",
        "om": "Deebiin kun barsiisa Ortodoksii Tewahedo Itoophiyaa guutummaatti calaqqisiisuu dhiisuu danda'a; "
              "ilaalchaaf ergameera.",
    },
    "consult_clergy": {
        "en": "For personal spiritual guidance, please speak with your local priest or father confessor.",
        "am": "ለግል መንፈሳዊ ምክር እባክዎ የአካባቢዎን ካህን ወይም የንስሐ አባትዎን ያነጋግሩ።",
        "ti": "ንውልቃዊ መንፈሳዊ ምኽሪ በጃኹም ንካህን ከባቢኹም ወይ ንኣቦ ንስሓኹም ተዛረቡ።",
        "om": "Gorsa hafuuraa dhuunfaaf maaloo luba naannoo keessanii ykn abbaa qalbii keessanii haasofsiisaa.",
    },
}


def localize(key: str, language: str) -> str:
    """Return the message for key in language, falling back to English."""
    catalog = MESSAGES[key]
    return catalog.get(language) or catalog[DEFAULT_LANGUAGE]


def unsupported_language_message(supported: Iterable[str]) -> str:
    """Guidance listing the supported languages, for input we cannot classify."""
    names = ", ".join(LANGUAGE_NAMES.get(code, code) for code in supported)
    return (
        "We could not recognize the language of your question. "
        f"Please ask in one of our supported languages: {names}."
    )


def response_directive(language: str) -> str:
    """Explicit output-language instruction for the prompt."""
    return RESPONSE_DIRECTIVES.get(language, RESPONSE_DIRECTIVES[DEFAULT_LANGUAGE])
