"""
Prompt templates and pre-generated habit enhancements.

Prompts are kept short to hold per-request token counts down. COMMON_HABITS
seeds the response cache so the most frequent habit names never reach the
model.
"""

from typing import Dict, List, Optional

ENHANCEMENT_FIELDS = (
    "description",
    "healthBenefits",
    "mentalBenefits",
    "longTermBenefits",
    "difficulty",
    "tip",
    "complementary",
)


def habit_enhance_prompt(
    habit_name: str,
    tags: Optional[str] = None,
    existing_habits: Optional[List[str]] = None,
) -> str:
    tags_line = f"Tags: {tags}" if tags else ""
    existing_line = f"Existing habits: {', '.join(existing_habits)}" if existing_habits else ""
    return f"""
Enhance this habit with detailed motivational information. Return JSON only, no explanation.

Habit: "{habit_name}"
{tags_line}
{existing_line}

Required JSON format:
{{
  "description": "1 sentence, max 20 words",
  "healthBenefits": "2-3 sentences describing physical health improvements and benefits",
  "mentalBenefits": "2-3 sentences describing mental, emotional, and cognitive benefits",
  "longTermBenefits": "2-3 sentences describing long-term life improvements and outcomes",
  "difficulty": "easy"|"medium"|"hard",
  "tip": "2-4 sentences with actionable strategies, timing advice, environmental setup, obstacle solutions, habit stacking ideas, and motivation techniques",
  "complementary": ["habit that pairs well", "another habit"]
}}"""


def quick_insight_prompt(habit_name: str, streak: int, completion_rate: float) -> str:
    return f"""
Generate ONE motivational insight for this habit progress:

Habit: {habit_name}
Current streak: {streak} days
Completion rate: {completion_rate:g}%

Return a single sentence of encouragement or advice (max 25 words). No JSON, just the message."""


HABIT_RECOMMENDATION_SYSTEM = (
    "You are a habit formation expert. Suggest complementary habits that work well together "
    "and support user goals."
)


def habit_recommendation_prompt(existing_habits: List[str], user_goals: Optional[str] = None) -> str:
    habits = ", ".join(existing_habits) or "none yet"
    goals = f"\nUser goals: {user_goals}" if user_goals else ""
    return f"""Current habits: {habits}{goals}

Suggest 3 new habits that complement their existing routine. Format: Return ONLY a JSON array of habit names, like: ["Habit 1", "Habit 2", "Habit 3"]"""


def _significance(value: float) -> str:
    return "significant" if abs(value) > 0.3 else "weak"


def mood_pattern_analysis_prompt(
    correlations: Dict[str, float],
    patterns: Dict[str, int],
    trends: Dict[str, str],
    avg_mood_scores: Dict[str, float],
    avg_completion_rate: float,
) -> str:
    """Build the prompt that turns mood statistics into personal insight text.

    Args:
        correlations: Correlation of each mood dimension with completion rate
        patterns: ``highPerformanceDays`` and ``lowPerformanceDays`` counts
        trends: ``moodTrend`` and ``habitTrend`` labels
        avg_mood_scores: Average of each mood dimension on the 1-5 scale
        avg_completion_rate: Average daily completion rate in percent

    Returns:
        Prompt text requesting a JSON object
    """
    corr_lines = "\n".join(
        f"- {label}: {correlations[key]:.3f} ({_significance(correlations[key])})"
        for key, label in (("mood", "Mood"), ("energy", "Energy"), ("stress", "Stress"), ("sleep", "Sleep"))
    )
    return f"""
Analyze this user's mood-habit correlation data and provide personalized insights. Return JSON only.

Correlations with habit completion:
{corr_lines}

Performance:
- High performance days: {patterns['highPerformanceDays']}
- Low performance days: {patterns['lowPerformanceDays']}
- Average completion rate: {avg_completion_rate:.1f}%

Recent trends:
- Mood trend: {trends['moodTrend']}
- Habit completion trend: {trends['habitTrend']}

Average mood scores (1-5 scale):
- Overall mood: {avg_mood_scores['mood']:.1f}
- Energy: {avg_mood_scores['energy']:.1f}
- Stress: {avg_mood_scores['stress']:.1f} (lower is better)
- Sleep quality: {avg_mood_scores['sleep']:.1f}

Required JSON:
{{
  "insight": "2-3 sentences summarizing the key finding about this person's mood-habit relationship",
  "primaryFactor": "mood"|"energy"|"stress"|"sleep",
  "recommendation": "specific actionable advice based on their strongest correlation (max 30 words)",
  "encouragement": "positive motivational message about their patterns and progress (max 25 words)"
}}"""


# Pre-generated enhancements for the most common habit names, keyed by fingerprint.
COMMON_HABITS: Dict[str, Dict] = {
    "meditation": {
        "description": "Daily mindfulness practice to reduce stress and improve focus",
        "healthBenefits": "Regular meditation reduces cortisol levels by up to 27%, lowering blood pressure and improving immune system function. It also helps regulate sleep patterns and reduces inflammation in the body.",
        "mentalBenefits": "Meditation significantly improves focus, attention span, and emotional regulation. Studies show it reduces anxiety and depression while increasing self-awareness and empathy towards others.",
        "longTermBenefits": "Long-term meditation practice leads to structural brain changes that enhance memory, creativity, and decision-making. It builds resilience against stress and creates lasting improvements in overall life satisfaction.",
        "difficulty": "easy",
        "tip": "Start with just 2 minutes using a guided app like Headspace",
        "bestTime": "morning",
        "duration": "10",
        "complementary": ["Journaling", "Deep breathing"],
    },
    "exercise": {
        "description": "Physical activity to boost energy, mood, and overall health",
        "healthBenefits": "Regular exercise strengthens your cardiovascular system, builds bone density, and improves muscle strength. It boosts metabolism, enhances immune function, and reduces risk of chronic diseases by up to 50%.",
        "mentalBenefits": "Exercise releases endorphins and BDNF, creating natural mood elevation and mental clarity. It reduces anxiety, improves self-confidence, and provides a healthy outlet for stress and frustration.",
        "longTermBenefits": "Consistent exercise adds years to your life while maintaining independence and mobility as you age. It creates sustainable energy levels, better sleep quality, and a positive relationship with your body.",
        "difficulty": "medium",
        "tip": "Start with 10-minute walks and gradually increase intensity",
        "bestTime": "morning",
        "duration": "30",
        "complementary": ["Healthy eating", "Adequate sleep"],
    },
    "reading": {
        "description": "Daily reading to expand knowledge and improve cognitive function",
        "healthBenefits": "Reading for just 6 minutes can reduce stress levels by 68%, lowering heart rate and muscle tension. It exercises your brain like a muscle, helping maintain cognitive function as you age.",
        "mentalBenefits": "Regular reading expands vocabulary, improves concentration, and enhances analytical thinking skills. It stimulates imagination, increases empathy by exposing you to different perspectives, and provides mental escape from daily stressors.",
        "longTermBenefits": "Lifelong readers show significantly reduced rates of cognitive decline and dementia. Reading creates a growth mindset, continuous learning habits, and opens doors to new opportunities and deeper conversations.",
        "difficulty": "easy",
        "tip": "Read for 10 minutes before bed instead of scrolling social media",
        "bestTime": "evening",
        "duration": "20",
        "complementary": ["Note-taking", "Discussion groups"],
    },
    "no sugar": {
        "description": "Eliminate added sugars to improve energy and reduce health risks",
        "healthBenefits": "Cutting sugar reduces inflammation, stabilizes blood glucose levels, and improves dental health. It leads to better weight management, reduced risk of diabetes, and improved heart health markers.",
        "mentalBenefits": "Eliminating sugar crashes creates stable energy throughout the day and improves mood consistency. It reduces brain fog, enhances focus, and breaks the cycle of sugar cravings and emotional eating.",
        "longTermBenefits": "Long-term sugar reduction significantly lowers risk of chronic diseases, maintains youthful skin appearance, and supports healthy aging. It creates sustainable eating habits and improved relationship with food.",
        "difficulty": "medium",
        "tip": "Replace sugary drinks with sparkling water and fruit",
        "bestTime": "morning",
        "duration": "5",
        "complementary": ["Healthy meal prep", "Reading nutrition labels"],
    },
    "water": {
        "description": "Drink adequate water throughout the day for optimal health",
        "healthBenefits": "Proper hydration improves kidney function, regulates body temperature, and supports healthy digestion. It maintains blood pressure, lubricates joints, and helps transport nutrients throughout your body.",
        "mentalBenefits": "Even mild dehydration can impair concentration, memory, and mood. Staying hydrated enhances mental clarity, reduces fatigue, and improves overall cognitive performance throughout the day.",
        "longTermBenefits": "Consistent hydration supports healthy aging, maintains skin elasticity, and prevents kidney stones. It creates sustainable energy levels and reduces risk of chronic health issues related to dehydration.",
        "difficulty": "easy",
        "tip": "Keep a water bottle visible on your desk as a reminder",
        "bestTime": "morning",
        "duration": "1",
        "complementary": ["Healthy eating", "Morning routine"],
    },
    "journaling": {
        "description": "Daily writing practice for self-reflection and mental clarity",
        "healthBenefits": "Journaling reduces stress hormones like cortisol, improves immune system function, and can help lower blood pressure. It also promotes better sleep quality and faster recovery from illness.",
        "mentalBenefits": "Writing thoughts and feelings reduces anxiety, improves emotional processing, and enhances self-awareness. It helps organize thoughts, process difficult experiences, and develop problem-solving skills.",
        "longTermBenefits": "Regular journaling creates a valuable record of personal growth and life patterns. It builds emotional intelligence, improves communication skills, and provides a healthy outlet for lifelong stress management.",
        "difficulty": "easy",
        "tip": "Write 3 sentences about your day every evening",
        "bestTime": "evening",
        "duration": "10",
        "complementary": ["Meditation", "Gratitude practice"],
    },
}
