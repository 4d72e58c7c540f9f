from __future__ import annotations

import re

OTHER = "أخرى"
CATEGORY_LINE = re.compile(r"🏷️\s*الفئة:\s*(.+)")
_CATEGORY_LINE_REMOVE = re.compile(r"🏷️\s*الفئة:.*\n?")

YEMENHR_CATEGORIES: dict[str, str] = {
    "Development": "تطوير",
    "Healthcare": "رعاية صحية",
    "Computers/IT": "تقنية معلومات",
    "Finance/Accounting": "محاسبة ومالية",
    "Engineering": "هندسة",
    "Sales/Marketing": "مبيعات وتسويق",
    "Administration": "إدارة",
    "Logistics": "لوجستيك",
    "Human Resources": "موارد بشرية",
    "Communication": "اتصالات",
    "Education/Training": "تعليم وتدريب",
    "Consulting": "استشارات",
    "Legal/Law": "قانون",
    "Others": OTHER,
}

RELIEFWEB_CATEGORIES: dict[str, str] = {
    "Program/Project Management": "إدارة برامج ومشاريع",
    "Monitoring and Evaluation": "متابعة وتقييم",
    "Coordination": "تنسيق",
    "Logistics/Procurement": "لوجستيك ومشتريات",
    "Protection/Human Rights": "حماية وحقوق إنسان",
    "Health": "صحة",
    "Education": "تعليم",
    "WASH": "مياه وصرف صحي",
    "Information Management": "إدارة معلومات",
    "Administration/Finance": "إدارة ومالية",
    "Human Resources": "موارد بشرية",
    "Communications/Advocacy": "اتصالات ودعوة",
    "Food and Nutrition": "أمن غذائي وتغذية",
    "Information Technology": "تقنية معلومات",
    "Others": OTHER,
}

SOURCE_CATEGORIES: dict[str, dict[str, str]] = {
    "yemenhr": YEMENHR_CATEGORIES,
    "reliefweb": RELIEFWEB_CATEGORIES,
}

# First match wins: specific categories come before broad ones.
KEYWORD_CATEGORIES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(doctor|nurse|medic|pharma|health|clinic|hospital|medical|nutrition|صح|طب|تمريض|صيدل)", re.I), "رعاية صحية"),
    (re.compile(r"\b(engineer|civil|mechanical|electrical|structural|مهندس|هندس)", re.I), "هندسة"),
    (
        re.compile(
            r"\b(software|developer|programmer|IT\b|data\s*(?:analyst|scientist|engineer)|cyber|network|system\s*admin|تقنية|برمج|حاسوب)",
            re.I,
        ),
        "تقنية معلومات",
    ),
    (re.compile(r"\b(accountant|finance|financial|audit|budget|treasury|محاسب|مالي|تدقيق)", re.I), "محاسبة ومالية"),
    (re.compile(r"\b(human\s*resource|HR\b|recruitment|talent|موارد\s*بشر)", re.I), "موارد بشرية"),
    (re.compile(r"\b(sales|marketing|brand|digital\s*market|content|social\s*media|مبيعات|تسويق)", re.I), "مبيعات وتسويق"),
    (re.compile(r"\b(teacher|trainer|training|education|instructor|tutor|تعليم|تدريب|مدرس)", re.I), "تعليم وتدريب"),
    (re.compile(r"\b(logistics|supply\s*chain|warehouse|procurement|shipping|لوجست|مشتريات|مستودع)", re.I), "لوجستيك"),
    (re.compile(r"\b(legal|lawyer|attorney|law\b|compliance|قانون|محام)", re.I), "قانون"),
    (re.compile(r"\b(communicat|journalist|media|public\s*relation|PR\b|اتصال|إعلام|صحاف)", re.I), "اتصالات"),
    (re.compile(r"\b(consult|advisory|استشار)", re.I), "استشارات"),
    (re.compile(r"\b(admin|office\s*manager|secretary|executive\s*assist|إدار|سكرتار)", re.I), "إدارة"),
    (re.compile(r"\b(programme|program\s*officer|project\s*officer|development\s*officer|تطوير)", re.I), "تطوير"),
]

RELIEFWEB_KEYWORD_CATEGORIES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(programme|program|project)\s*(officer|manager|coordinator|director|lead)", re.I), "إدارة برامج ومشاريع"),
    (re.compile(r"\b(M&E|monitoring|evaluation|MEAL)", re.I), "متابعة وتقييم"),
    (re.compile(r"\b(coordinat)", re.I), "تنسيق"),
    (re.compile(r"\b(logistics|procurement|supply)", re.I), "لوجستيك ومشتريات"),
    (re.compile(r"\b(protection|GBV|child\s*protect|human\s*rights)", re.I), "حماية وحقوق إنسان"),
    (re.compile(r"\b(health|medic|nurse|doctor|nutrition)", re.I), "صحة"),
    (re.compile(r"\b(education|teacher|school)", re.I), "تعليم"),
    (re.compile(r"\b(WASH|water|sanitation|hygiene)", re.I), "مياه وصرف صحي"),
    (re.compile(r"\b(information\s*manage|IM\b|data\s*manage)", re.I), "إدارة معلومات"),
    (re.compile(r"\b(admin|finance|accountant|budget)", re.I), "إدارة ومالية"),
    (re.compile(r"\b(human\s*resource|HR\b|recruitment)", re.I), "موارد بشرية"),
    (re.compile(r"\b(communicat|advocacy|media|public\s*info)", re.I), "اتصالات ودعوة"),
    (re.compile(r"\b(food|nutrition|food\s*security)", re.I), "أمن غذائي وتغذية"),
    (re.compile(r"\b(IT\b|software|developer|technology|ICT)", re.I), "تقنية معلومات"),
]


def categories_for(source: str | None) -> list[str]:
    mapping = SOURCE_CATEGORIES.get(source or "", YEMENHR_CATEGORIES)
    return list(mapping.values())


def match_category_from_raw(raw_categories: list[str], source: str) -> str | None:
    """Translate a source's own English category label, if the source has a known map."""
    mapping = SOURCE_CATEGORIES.get(source)
    if not mapping:
        return None
    for raw in raw_categories:
        if raw and raw.strip() in mapping:
            return mapping[raw.strip()]
    return None


def classify_by_keywords(title: str, description: str, source: str | None = None) -> str:
    text = f"{title} {description}"
    rules = RELIEFWEB_KEYWORD_CATEGORIES if source == "reliefweb" else KEYWORD_CATEGORIES
    for pattern, category in rules:
        if pattern.search(text):
            return category
    return OTHER


def extract_category(text: str, source: str | None = None) -> str:
    """Category named on the model's ``🏷️ الفئة:`` line, or ``""`` when there is none."""
    valid = categories_for(source)
    for line in text.split("\n"):
        match = CATEGORY_LINE.search(line)
        if not match:
            continue
        category = match.group(1).strip()
        if not category:
            return OTHER
        if category in valid:
            return category
        for known in valid:
            if known in category or category in known:
                return known
        return OTHER
    return ""


def remove_category_line(text: str) -> str:
    return _CATEGORY_LINE_REMOVE.sub("", text, count=1).strip()
