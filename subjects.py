"""Subject catalog used for display. Study logs accept any subject key."""
from typing import Dict, List, Literal

SchoolLevel = Literal["elementary", "junior", "high"]

SUBJECTS: List[Dict] = [
    # elementary
    {"key": "kokugo", "label": "Japanese", "category": "Japanese", "levels": ["elementary"]},
    {"key": "sansu", "label": "Arithmetic", "category": "Math", "levels": ["elementary"]},
    {"key": "rika_elem", "label": "Science", "category": "Science", "levels": ["elementary"]},
    {"key": "shakai_elem", "label": "Social Studies", "category": "Social Studies", "levels": ["elementary"]},
    {"key": "eigo_elem", "label": "English", "category": "English", "levels": ["elementary"]},
    # junior high
    {"key": "japanese_jr", "label": "Japanese", "category": "Japanese", "levels": ["junior"]},
    {"key": "math_jr", "label": "Math", "category": "Math", "levels": ["junior"]},
    {"key": "english_jr", "label": "English", "category": "English", "levels": ["junior"]},
    {"key": "rika_jr", "label": "Science", "category": "Science", "levels": ["junior"]},
    {"key": "shakai_jr", "label": "Social Studies", "category": "Social Studies", "levels": ["junior"]},
    # high school
    {"key": "english", "label": "English", "category": "English", "levels": ["high"]},
    {"key": "english_r", "label": "English Reading", "category": "English", "levels": ["high"]},
    {"key": "english_l", "label": "English Listening", "category": "English", "levels": ["high"]},
    {"key": "math", "label": "Math", "category": "Math", "levels": ["high"]},
    {"key": "math_1a", "label": "Math I/A", "category": "Math", "levels": ["high"]},
    {"key": "math_2bc", "label": "Math II/B/C", "category": "Math", "levels": ["high"]},
    {"key": "math_3", "label": "Math III", "category": "Math", "levels": ["high"]},
    {"key": "japanese", "label": "Japanese", "category": "Japanese", "levels": ["high"]},
    {"key": "modern_japanese", "label": "Modern Japanese", "category": "Japanese", "levels": ["high"]},
    {"key": "classics", "label": "Classics", "category": "Japanese", "levels": ["high"]},
    {"key": "kanbun", "label": "Classical Chinese", "category": "Japanese", "levels": ["high"]},
    {"key": "physics", "label": "Physics", "category": "Science", "levels": ["high"]},
    {"key": "chemistry", "label": "Chemistry", "category": "Science", "levels": ["high"]},
    {"key": "biology", "label": "Biology", "category": "Science", "levels": ["high"]},
    {"key": "earth_science", "label": "Earth Science", "category": "Science", "levels": ["high"]},
    {"key": "world_history", "label": "World History", "category": "History", "levels": ["high"]},
    {"key": "japanese_history", "label": "Japanese History", "category": "History", "levels": ["high"]},
    {"key": "geography", "label": "Geography", "category": "History", "levels": ["high"]},
    {"key": "civics", "label": "Civics", "category": "Civics", "levels": ["high"]},
    {"key": "politics_economics", "label": "Politics and Economics", "category": "Civics", "levels": ["high"]},
    {"key": "ethics", "label": "Ethics", "category": "Civics", "levels": ["high"]},
    {"key": "information", "label": "Information", "category": "Information", "levels": ["high"]},
]

_LABELS = {s["key"]: s["label"] for s in SUBJECTS}


def school_level(grade: int) -> SchoolLevel:
    if grade <= 6:
        return "elementary"
    if grade <= 9:
        return "junior"
    return "high"


def subjects_for_grade(grade: int) -> List[Dict]:
    level = school_level(grade)
    return [s for s in SUBJECTS if level in s["levels"]]


def subject_label(key: str) -> str:
    # free-form subjects are shown as entered
    return _LABELS.get(key, key)
