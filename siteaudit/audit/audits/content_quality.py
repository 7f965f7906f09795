"""Content quality audit: text volume, readability, structure and richness.

The page script only extracts the main content text and element counts.
Word, sentence and readability statistics are computed here so they can be
tested without a browser.
"""

import re
from collections import Counter
from typing import Any, Dict, List, Optional

from ..models.context import AuditContext
from .base import Audit, grade_for


THIN_CONTENT_WORDS = 300
SHORT_CONTENT_WORDS = 500
LONG_FORM_WORDS = 2500
MIN_SENTENCE_CHARS = 10
TOP_KEYWORDS = 10

STOP_WORDS = frozenset("""
the be to of and a in that have i it for not on with he as you do at this
but his by from is was are been or an will my would there their what so up
out if about who get which go me when make can like no just him know take
into your some could them see other than then now only
""".split())

CONTENT_SCRIPT = """
() => {
    const selectors = ['main', 'article', '[role="main"]', '#content', '.content', '.post-content', '.entry-content'];
    let root = null;
    for (const sel of selectors) {
        root = document.querySelector(sel);
        if (root) break;
    }
    root = root || document.body;
    if (!root) return null;

    const clean = root.cloneNode(true);
    clean.querySelectorAll(
        'script, style, noscript, iframe, nav, header, footer, aside, .advertisement, .ad, .banner, .cookie-notice, .popup, .modal'
    ).forEach(el => el.remove());

    const sections = [];
    let current = null;
    root.childNodes.forEach(node => {
        if (node.nodeType !== 1) return;
        if (/^H[1-6]$/.test(node.tagName)) {
            if (current) sections.push(current);
            current = {
                heading: node.textContent.trim(),
                level: parseInt(node.tagName.charAt(1)),
                contentLength: 0,
                hasMedia: false,
                hasLists: false,
                hasTables: false,
            };
        } else if (current) {
            current.contentLength += (node.textContent || '').length;
            current.hasMedia = current.hasMedia || !!node.querySelector('img, video, audio, picture');
            current.hasLists = current.hasLists || !!node.querySelector('ul, ol, dl');
            current.hasTables = current.hasTables || !!node.querySelector('table');
        }
    });
    if (current) sections.push(current);

    const count = (sel) => root.querySelectorAll(sel).length;
    return {
        text: clean.textContent || '',
        paragraphs: count('p'),
        headings: Array.from(root.querySelectorAll('h1, h2, h3, h4, h5, h6')).map(h => ({
            level: parseInt(h.tagName.charAt(1)),
            text: h.textContent.trim(),
        })),
        sections: sections,
        lists: count('ul, ol, dl'),
        tables: count('table'),
        media: count('img, video, audio, picture, iframe[src*="youtube"], iframe[src*="vimeo"]'),
        codeBlocks: count('pre, code'),
        quotes: count('blockquote, q'),
        emphasis: count('strong, b, em, i, mark'),
        formElements: count('form, input, textarea, select'),
    };
}
"""

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_VOWEL_GROUPS = re.compile(r"[aeiouy]+")


def count_syllables(word: str) -> int:
    """Rough English syllable count from vowel groups; at least 1."""
    word = _NON_ALNUM.sub("", word.lower())
    if not word:
        return 0
    groups = len(_VOWEL_GROUPS.findall(word))
    if word.endswith("e") and not word.endswith("le") and groups > 1:
        groups -= 1
    return max(groups, 1)


def text_statistics(text: str, paragraphs: int = 0) -> Dict[str, Any]:
    """Word, sentence, vocabulary and readability statistics for ``text``."""
    words = text.split()
    word_count = len(words)
    sentences = [s for s in _SENTENCE_SPLIT.split(text) if len(s.strip()) > MIN_SENTENCE_CHARS]
    sentence_count = len(sentences)

    normalized = [w for w in (_NON_ALNUM.sub("", w.lower()) for w in words) if w]
    frequency = Counter(normalized)
    lexical_diversity = round(len(frequency) / word_count, 3) if word_count else 0.0

    words_per_sentence = round(word_count / sentence_count, 1) if sentence_count else 0.0
    words_per_paragraph = round(word_count / paragraphs, 1) if paragraphs else 0.0
    sentences_per_paragraph = round(sentence_count / paragraphs, 1) if paragraphs else 0.0

    flesch: Optional[int] = None
    kincaid: Optional[float] = None
    fog: Optional[float] = None
    if word_count and sentence_count:
        syllables_per_word = sum(count_syllables(w) for w in words) / word_count
        words_per_sentence_exact = word_count / sentence_count
        flesch = round(206.835 - 1.015 * words_per_sentence_exact - 84.6 * syllables_per_word)
        flesch = max(0, min(100, flesch))
        kincaid = max(0.0, round(0.39 * words_per_sentence_exact + 11.8 * syllables_per_word - 15.59, 1))
        complex_words = sum(1 for w in words if count_syllables(w) >= 3)
        fog = round(0.4 * (words_per_sentence_exact + 100 * complex_words / word_count), 1)

    keywords = [
        {"word": word, "count": n}
        for word, n in sorted(frequency.items(), key=lambda item: (-item[1], item[0]))
        if word not in STOP_WORDS and len(word) > 3
    ][:TOP_KEYWORDS]

    return {
        "wordCount": word_count,
        "sentenceCount": sentence_count,
        "paragraphCount": paragraphs,
        "uniqueWords": len(frequency),
        "lexicalDiversity": lexical_diversity,
        "avgWordsPerSentence": words_per_sentence,
        "avgWordsPerParagraph": words_per_paragraph,
        "avgSentencesPerParagraph": sentences_per_paragraph,
        "fleschReadingEase": flesch,
        "fleschKincaidGrade": kincaid,
        "gunningFogIndex": fog,
        "topKeywords": keywords,
    }


def heading_hierarchy_ok(headings: List[Dict[str, Any]]) -> bool:
    """False when a heading skips a level below the previous one (h2 -> h4)."""
    last = 0
    for heading in headings:
        level = heading.get("level") or 0
        if last and level > last + 1:
            return False
        last = level
    return True


def interpret_readability(flesch: Optional[int], grade: Optional[float]) -> Optional[str]:
    if flesch is None:
        return None
    if flesch >= 90:
        label = "Very easy to read (5th grade level)"
    elif flesch >= 80:
        label = "Easy to read (6th grade level)"
    elif flesch >= 70:
        label = "Fairly easy to read (7th grade level)"
    elif flesch >= 60:
        label = "Standard readability (8th-9th grade)"
    elif flesch >= 50:
        label = "Fairly difficult (10th-12th grade)"
    elif flesch >= 30:
        label = "Difficult to read (college level)"
    else:
        label = "Very difficult (graduate level)"
    return f"{label} | Grade level: {grade or 0:.1f}"


def _issue(issue_type: str, severity: str, message: str) -> Dict[str, str]:
    return {"type": issue_type, "severity": severity, "message": message}


RECOMMENDATIONS = {
    "thin-content": "Expand the content to at least 500-1000 words",
    "readability-poor": "Simplify sentences and use shorter words to improve readability",
    "no-headings": "Add H2 and H3 headings every 150-300 words to structure content",
    "repetitive-content": "Vary the vocabulary to reduce repetition",
    "long-paragraphs": "Break paragraphs into 50-100 word chunks",
    "no-media": "Add relevant images, charts or videos",
}


def analyze_content_quality(data: Dict[str, Any]) -> Dict[str, Any]:
    """Score extracted content and list issues and recommendations."""
    stats = text_statistics(data.get("text") or "", data.get("paragraphs") or 0)
    headings = data.get("headings") or []
    proper_hierarchy = heading_hierarchy_ok(headings)
    media = data.get("media") or 0
    lists = data.get("lists") or 0
    tables = data.get("tables") or 0
    quotes = data.get("quotes") or 0

    words = stats["wordCount"]
    flesch = stats["fleschReadingEase"]
    diversity = stats["lexicalDiversity"]
    per_paragraph = stats["avgWordsPerParagraph"]
    per_sentence = stats["avgWordsPerSentence"]

    issues: List[Dict[str, str]] = []
    score = 100

    if words < THIN_CONTENT_WORDS:
        issues.append(_issue("thin-content", "error", f"Content is too thin ({words} words); aim for at least {SHORT_CONTENT_WORDS}"))
        score -= 25
    elif words < SHORT_CONTENT_WORDS:
        issues.append(_issue("short-content", "warning", f"Content is relatively short ({words} words)"))
        score -= 15
    elif words < 1000:
        score -= 5
    elif words > LONG_FORM_WORDS:
        score += 5

    if flesch is not None:
        if flesch < 30:
            issues.append(_issue("readability-poor", "error", f"Content is very difficult to read (Flesch score: {flesch})"))
            score -= 15
        elif flesch < 50:
            issues.append(_issue("readability-difficult", "warning", f"Content is fairly difficult to read (Flesch score: {flesch})"))
            score -= 10
        elif flesch > 70:
            score += 5

    if not headings:
        issues.append(_issue("no-headings", "error", "No headings found"))
        score -= 10
    elif not proper_hierarchy:
        issues.append(_issue("heading-hierarchy", "warning", "Heading levels are skipped"))
        score -= 5

    if not (media or lists or tables):
        score -= 10
    elif media and (lists or tables):
        score += 5

    if words:
        if diversity < 0.3:
            issues.append(_issue("repetitive-content", "warning", f"Content is very repetitive (lexical diversity: {diversity * 100:.1f}%)"))
            score -= 10
        elif diversity < 0.5:
            score -= 5
        elif diversity > 0.7:
            score += 5

    if per_paragraph > 150:
        issues.append(_issue("long-paragraphs", "warning", f"Paragraphs are too long (avg: {int(per_paragraph)} words)"))
        score -= 10
    elif per_paragraph > 100:
        score -= 5

    if per_sentence > 25:
        issues.append(_issue("complex-sentences", "warning", f"Sentences are too complex (avg: {int(per_sentence)} words)"))
        score -= 5
    elif 0 < per_sentence < 10:
        score -= 3

    if words > SHORT_CONTENT_WORDS and not media:
        issues.append(_issue("no-media", "info", "No images or media found"))

    recommendations = [RECOMMENDATIONS[i["type"]] for i in issues if i["type"] in RECOMMENDATIONS]
    if words > 2000:
        recommendations.append("Add a table of contents for long-form content")
    if not lists and words > SHORT_CONTENT_WORDS:
        recommendations.append("Use bullet points or numbered lists to break up content")
    if not quotes and words > 1000:
        recommendations.append("Add quotes or citations from sources")

    score = max(0, min(100, score))
    return {
        "score": score,
        "grade": grade_for(score),
        "metrics": stats,
        "issues": issues,
        "recommendations": recommendations,
        "readability": {
            "fleschReadingEase": flesch,
            "fleschKincaidGrade": stats["fleschKincaidGrade"],
            "gunningFogIndex": stats["gunningFogIndex"],
            "interpretation": interpret_readability(flesch, stats["fleschKincaidGrade"]),
        },
        "contentStructure": {
            "headings": headings,
            "sections": data.get("sections") or [],
            "properHierarchy": proper_hierarchy,
        },
        "contentRichness": {
            "lists": lists,
            "tables": tables,
            "media": media,
            "codeBlocks": data.get("codeBlocks") or 0,
            "quotes": quotes,
            "emphasis": data.get("emphasis") or 0,
            "formElements": data.get("formElements") or 0,
        },
        "keywords": stats["topKeywords"],
        "lexicalDiversity": diversity,
    }


class ContentQualityAudit(Audit):
    name = "content_quality"

    async def run(self, ctx: AuditContext) -> None:
        data = await ctx.page.evaluate(CONTENT_SCRIPT) or {}
        ctx.content_quality = analyze_content_quality(data)
