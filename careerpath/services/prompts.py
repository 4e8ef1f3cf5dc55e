"""Prompt builders for LLM career scoring.

Each template frames the same task for a different kind of student; the
engine picks one with `select_template`.
"""

import json

from careerpath.schemas.catalog import Career
from careerpath.schemas.profile import StudentProfileIn

TECH_KEYWORDS = ("technology", "computer", "programming", "engineering", "science")
CREATIVE_KEYWORDS = ("arts", "design", "music", "literature", "creative")

TEMPLATE_FOCUS = {
    "nep2020": (
        "You are an expert Indian career counsellor. Follow the National Education "
        "Policy 2020: multidisciplinary learning, flexible pathways, vocational options "
        "and holistic development."
    ),
    "financial": (
        "You are a career counsellor for a student whose family has limited income. "
        "Favour affordable education paths, government colleges, scholarships, "
        "and careers with early earning potential. Be honest about costs."
    ),
    "rural": (
        "You are a career counsellor for a student from a rural area. Consider "
        "distance to institutions, local employment, agriculture and public-sector "
        "roles, and online learning where internet access allows."
    ),
    "inclusive": (
        "You are a career counsellor for a student with a physical disability. "
        "Consider accessible workplaces and institutions, reservations and "
        "scholarships for persons with disabilities, and remote-friendly careers."
    ),
    "high_achiever": (
        "You are a career counsellor for an academically excellent student. "
        "Consider competitive national institutions, research careers and "
        "demanding, high-growth fields."
    ),
    "tech": (
        "You are a career counsellor for a student interested in science and "
        "technology. Weigh emerging fields, engineering and computing paths, and "
        "the entrance examinations they need."
    ),
    "creative": (
        "You are a career counsellor for a student with creative interests. "
        "Consider design, media, arts and writing careers, portfolio building and "
        "design entrance examinations."
    ),
}


def select_template(profile: StudentProfileIn) -> str:
    constraints = profile.constraints
    income = profile.family_income
    if (constraints is not None and constraints.financial_constraints) or (
        "Below" in income or "1-3" in income
    ):
        return "financial"

    if profile.socioeconomic_data.rural_urban == "rural":
        return "rural"

    if profile.personal_info.physically_disabled:
        return "inclusive"

    performance = profile.academic_data.performance.lower()
    if "excellent" in performance or "outstanding" in performance:
        return "high_achiever"

    interests = [i.lower() for i in profile.academic_data.interests]
    if any(k in i for i in interests for k in TECH_KEYWORDS):
        return "tech"
    if any(k in i for i in interests for k in CREATIVE_KEYWORDS):
        return "creative"

    return "nep2020"


def format_profile(profile: StudentProfileIn) -> str:
    personal = profile.personal_info
    academic = profile.academic_data
    socio = profile.socioeconomic_data

    lines = [
        f"- Grade: {personal.grade} ({personal.board})",
        f"- Preferred language: {personal.language_preference}",
        f"- Interests: {', '.join(academic.interests)}",
        f"- Subjects: {', '.join(academic.subjects)}",
        f"- Academic performance: {academic.performance}",
    ]
    if academic.favorite_subjects:
        lines.append(f"- Favourite subjects: {', '.join(academic.favorite_subjects)}")
    if academic.difficult_subjects:
        lines.append(f"- Difficult subjects: {', '.join(academic.difficult_subjects)}")
    if academic.extracurricular_activities:
        lines.append(f"- Activities: {', '.join(academic.extracurricular_activities)}")
    lines.extend(
        [
            f"- Location: {socio.location} ({socio.rural_urban})",
            f"- Family income: {profile.family_income}",
            f"- Internet access: {'yes' if socio.internet_access else 'no'}",
        ]
    )
    if personal.category:
        lines.append(f"- Category: {personal.category}")
    if personal.physically_disabled:
        lines.append("- Has a physical disability")

    if profile.aspirations is not None:
        if profile.aspirations.preferred_careers:
            lines.append(f"- Careers of interest: {', '.join(profile.aspirations.preferred_careers)}")
        if profile.aspirations.preferred_locations:
            lines.append(f"- Preferred locations: {', '.join(profile.aspirations.preferred_locations)}")
    if profile.constraints is not None:
        if profile.constraints.financial_constraints:
            lines.append("- Has financial constraints")
        if profile.constraints.family_expectations:
            lines.append(f"- Family expectations: {', '.join(profile.constraints.family_expectations)}")

    return "\n".join(lines)


def format_careers(careers: list[Career]) -> str:
    return "\n".join(
        f"- {c.id}: {c.title} [{c.nep_category}], entry salary INR {c.average_salary.entry}, "
        f"demand {c.demand_level}, education: {'; '.join(c.required_education)}"
        for c in careers
    )


def build_scoring_prompt(
    profile: StudentProfileIn,
    careers: list[Career],
    template: str = "nep2020",
) -> str:
    focus = TEMPLATE_FOCUS.get(template, TEMPLATE_FOCUS["nep2020"])
    example = {
        "recommendations": [
            {
                "career_id": careers[0].id if careers else "software-engineer",
                "match_score": 82,
                "reasoning": "Strong mathematics and interest in technology",
                "nep_alignment": "Skill-based, multidisciplinary pathway",
            }
        ]
    }
    return f"""{focus}

STUDENT PROFILE:
{format_profile(profile)}

CANDIDATE CAREERS (use these ids only):
{format_careers(careers)}

TASK:
Score how well each candidate career fits this student, from 0 to 100.
Base scores only on the profile above. Do not infer caste, religion or personality.
Return the careers you consider relevant, at most 6, best first.

Respond ONLY with valid JSON in this format:
{json.dumps(example, indent=2)}"""


def follow_up_questions(profile: StudentProfileIn) -> list[str]:
    """Questions a counsellor could ask to refine the recommendations."""
    academic = profile.academic_data
    questions = [
        "Which of your interests would you enjoy doing every day as work?",
        "Do you prefer working with people, data, machines or ideas?",
    ]
    if not academic.favorite_subjects:
        questions.append("Which school subjects do you enjoy the most, and why?")
    if academic.difficult_subjects:
        questions.append(
            f"Would extra support in {', '.join(academic.difficult_subjects)} change the careers you consider?"
        )
    if profile.aspirations is None or not profile.aspirations.preferred_careers:
        questions.append("Are there any careers you have already thought about?")
    if profile.aspirations is None or not profile.aspirations.preferred_locations:
        questions.append("Are you willing to move to another city or state for college?")
    if profile.constraints is not None and profile.constraints.financial_constraints:
        questions.append("Would you consider scholarships, education loans or part-time study?")
    if profile.socioeconomic_data.rural_urban == "rural":
        questions.append("Would you like a career that lets you work in or near your home district?")
    if not profile.socioeconomic_data.internet_access:
        questions.append("Can you access a computer or internet at school or a community centre?")
    return questions

