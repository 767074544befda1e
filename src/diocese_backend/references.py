"""
Reference material appended to the assistant's system prompt.

Which sections are included depends on the wording of the user's latest
question; the table relationship section is always present.
"""

from typing import List

from diocese_backend.permissions.roles import ExternalRole

QUESTION_ANALYSIS = "question_analysis"
SCORE_CALCULATION = "score_calculation"
NULL_HANDLING = "null_handling"
TABLE_RELATIONSHIPS = "table_relationships"

QUESTION_REFERENCES = {
    "eucharist": {
        "id": 436,
        "text": "The Eucharist we receive at Mass is truly the Body and Blood of Jesus Christ.",
        "answers": {
            1538: "I believe this",
            1539: "I know the Church teaches this, but I struggle to believe it",
            1540: "I know the Church teaches this, but I do not believe it",
            1542: "I did not know the Church teaches this",
            1927: "Blank",
        },
    },
    "mass_attendance": {
        "id": 7111,
        "text": "I attend Mass",
        "answers": {
            1927: "Blank",
            29861: "Weekly or more often",
            29871: "Sometimes",
            29881: "Only at school",
            29891: "No",
        },
    },
    "baptism": {
        "id": 7121,
        "text": "I have been baptized",
        "answers": {
            1927: "Blank",
            29901: "Yes",
            29911: "No",
            29921: "Not sure",
        },
    },
}

NULL_HANDLING_PATTERNS = {
    "numeric": "COALESCE(column_name, 0)",
    "text": "COALESCE(column_name, '')",
    "date": "COALESCE(column_name, CURRENT_DATE)",
    "boolean": "COALESCE(column_name, false)",
    "division": "NULLIF(denominator, 0)",
}

RELATIONSHIPS = {
    "Core Tables": {
        "testing_section_students": "testing results for all users - MUST filter by user role",
        "testing_sections": "testing sections of a school",
        "testing_centers": "schools",
        "subject_areas": "subject categorization",
    },
    "User Tables": {
        "users": "user information",
        "user_answers": "user responses to questions",
        "questions": "question content and context",
    },
    "Organizational Tables": {
        "dioceses": "diocese information",
        "school_classes": "class information",
        "academic_years": "academic year context",
        "domains": "domain categorization",
        "ark_admin_dashes": "admin dashboard data",
    },
}

TEACHER_ROLE = ExternalRole.TEACHER.code
STUDENT_ROLE = ExternalRole.STUDENT.code

SCORE_FORMULA = "(COALESCE(knowledge_score::float, 0) / NULLIF(COALESCE(knowledge_total::float, 0), 0)) * 100"
SCORE_SUBJECTS = ["Math", "Reading", "Theology"]

_KEYWORDS = [
    (QUESTION_ANALYSIS, ("eucharist", "mass", "baptism")),
    (SCORE_CALCULATION, ("score", "average", "calculation")),
    (NULL_HANDLING, ("null", "coalesce", "nullif")),
]


def determine_query_type(question: str) -> List[str]:
    """Reference sections relevant to a question, in prompt order."""

    lowered = (question or "").lower()
    types = [name for name, words in _KEYWORDS if any(word in lowered for word in words)]
    types.append(TABLE_RELATIONSHIPS)
    return types


def _question_section() -> str:
    blocks = []
    for reference in QUESTION_REFERENCES.values():
        answers = "\n".join(f"- {answer_id} = {text}" for answer_id, text in reference["answers"].items())
        blocks.append(f"{reference['text']} (id = {reference['id']}):\n{answers}")
    return "**Question References:**\n" + "\n\n".join(blocks)


def _score_section() -> str:
    return (
        "**Score Calculation:**\n"
        "Only count rows WHERE knowledge_score IS NOT NULL AND knowledge_total IS NOT NULL "
        "AND knowledge_total > 0 AND knowledge_score > 0\n"
        f"Formula: {SCORE_FORMULA}\n"
        f"Common Subjects: {', '.join(SCORE_SUBJECTS)}"
    )


def _null_section() -> str:
    patterns = "\n".join(f"- {kind}: {pattern}" for kind, pattern in NULL_HANDLING_PATTERNS.items())
    return f"**NULL Handling Patterns:**\n{patterns}"


def _relationship_section() -> str:
    groups = []
    for title, tables in RELATIONSHIPS.items():
        lines = "\n".join(f"- {table}: {description}" for table, description in tables.items())
        groups.append(f"{title}:\n{lines}")
    return "**Table Relationships:**\n" + "\n\n".join(groups)


_SECTIONS = {
    QUESTION_ANALYSIS: _question_section,
    SCORE_CALCULATION: _score_section,
    NULL_HANDLING: _null_section,
    TABLE_RELATIONSHIPS: _relationship_section,
}


def reference_section(types: List[str]) -> str:
    return "\n\n".join(_SECTIONS[name]() for name in types if name in _SECTIONS)
