"""Prompt templates for note, title, flashcard, quiz and chat generation."""

from __future__ import annotations

from studynote.models import ROLE_USER, ChatMessage

SYSTEM_INSTRUCTION = (
    "You are Study-Note-GPT. Your mission: turn any transcript into clear, "
    "well-structured Markdown notes that help the reader **master** the material "
    "using the Feynman technique (teach it back in simple language)."
)

MAX_FLASHCARDS = 25
MAX_QUIZ_QUESTIONS = 20


def language_instruction(language: str | None) -> str:
    if language:
        return f"Write ALL output, including headers, in {language} language."
    return (
        "Detect the language of the transcript and write ALL output, "
        "including headers, in that language."
    )


def note_prompt(transcript: str, language: str | None = None) -> str:
    return f"""{language_instruction(language)}

**###** 💡 1 Paragraph Simplification
One plain-language paragraph that could be read to a novice.

## Introduction
Give a 1-paragraph introduction (at most 60 words).

For each major theme you find (create as many as needed):

### {{{{Theme Name}}}}
Provide a concise discussion of this theme (at most 60 words). Present narrative explanations in full paragraphs. Use bullet points **only** for:
- Ordered sequences (1., 2., 3., ...)
- Lists of distinct items or features
- Collections of unrelated facts

Each theme should be formatted entirely as a paragraph or entirely as bullets, never a mix of the two.

If and only if information (dates, stats, comparisons, steps) would be clearer in a table, add up to 2 tables directly within the relevant theme sections. Do not create a separate "Tables" section.

## Conclusion
Wrap up in 1 paragraph, linking back to the main takeaways.

### Style Rules
1. Use **##** for main headers, **###** for sub-headers.
2. Bullet lists with **-**.
3. Format tables with `|` and `-`.
4. Inline code or technical terms with back-ticks.
5. Bold sparingly for emphasis.
6. Never invent facts not present in the transcript.
7. Output *only* Markdown: no explanations, no apologies.
8. Do NOT use section headers like "Key Points", "Tables", or "Important Details".

Transcript:
{transcript}
"""


def title_prompt(transcript: str, language: str | None = None) -> str:
    if language:
        language_line = f"Generate the title in {language} language."
    else:
        language_line = (
            "Detect the language of the transcript and generate the title in that same language."
        )
    return f"""Based on this transcript, generate a concise but descriptive title (maximum 60 characters) that captures the main topic or theme.
The title should be clear and informative, avoiding generic phrases.
{language_line}

Transcript:
{transcript}

Generate only the title, nothing else.
"""


def flashcards_prompt(content: str, title: str, count: int) -> str:
    count = max(1, min(count, MAX_FLASHCARDS))
    return f"""Generate between {count} and {MAX_FLASHCARDS} educational flashcards from the following note content.
You decide the exact number based on the richness and complexity of the content, but don't generate fewer than {count} cards.

Each flashcard should have a question on the front and an answer on the back.
Create diverse types of cards including:
1. Term-definition pairs
2. Fill-in-the-blank questions
3. Concept explanation questions
4. Application questions
5. Comparison questions

Format your response as a JSON array of objects with "front" and "back" properties.
Keep the front side concise (under 100 characters if possible).
Keep the back side clear and informative (under 200 characters if possible).

Note Title: {title}
Note Content: {content}

Return ONLY valid JSON in this format:
[
  {{"front": "Question 1?", "back": "Answer 1"}},
  {{"front": "Question 2?", "back": "Answer 2"}},
  ...
]
"""


def quiz_prompt(content: str, title: str, count: int) -> str:
    count = max(1, min(count, MAX_QUIZ_QUESTIONS))
    return f"""Generate between {count} and {MAX_QUIZ_QUESTIONS} educational multiple-choice quiz questions from the following note content.
You decide the exact number based on the richness and complexity of the content, but don't generate fewer than {count} questions.

Create diverse types of questions including:
1. Factual recall questions
2. Conceptual understanding questions
3. Application questions
4. Analysis questions
5. Evaluation questions

IMPORTANT GUIDELINES FOR DIVERSITY:
- Ensure questions cover different parts of the content, not just the beginning
- Make sure correct answers are substantially different from each other
- Avoid creating multiple questions that test the same concept
- Use different question formats (what, why, how, which, etc.)
- Include questions at different difficulty levels

Each question must have:
- A clear question statement
- Exactly 4 answer options (A, B, C, D)
- One correct answer (indicated by the correctAnswer field)
- A brief explanation of why the correct answer is right

IMPORTANT: Vary the position of the correct answer. Distribute correct answers randomly among all four positions.

Format your response as a JSON array of objects with these properties:
- "question": The question text
- "options": An array of 4 possible answers
- "correctAnswer": The index of the correct answer (0-3)
- "explanation": A brief explanation of the correct answer

Note Title: {title}
Note Content: {content}

Return ONLY valid JSON in this format:
[
  {{
    "question": "What is the main concept discussed in the note?",
    "options": ["Option A", "Option B", "Option C", "Option D"],
    "correctAnswer": 2,
    "explanation": "Option C is correct because..."
  }},
  ...
]
"""


def _conversation(history: list[ChatMessage]) -> str:
    if not history:
        return ""
    lines = [
        f"{'Student' if message.role == ROLE_USER else 'Assistant'}: {message.content}"
        for message in history
    ]
    return "Conversation so far:\n" + "\n".join(lines) + "\n\n"


def chat_prompt(
    note_title: str,
    note_content: str,
    question: str,
    history: list[ChatMessage] | None = None,
) -> str:
    return f"""You are an AI study assistant helping a student understand the following note:

Title: {note_title}

Content:
{note_content}

{_conversation(history or [])}The student asks: {question}

Provide a helpful, educational response that helps the student understand the material better.
Your response should be clear, concise, and focused on the student's question.
If the question is not related to the note content, gently guide the student back to the topic.
Use examples and analogies when appropriate to aid understanding.
"""
