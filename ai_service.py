"""
Generative content service for course descriptions, feedback, quiz questions
and video transcripts / Q&A. Talks to any OpenAI-compatible chat API (Groq by default).
"""

from typing import List, Optional
import os
import json

from dotenv import load_dotenv
from openai import AsyncOpenAI

import schemas

load_dotenv()

AI_DISABLED_MESSAGE = "AI functionality is disabled. Please configure the OPENAI_API_KEY."
QUESTION_TYPES = ("multiple-choice", "true-false")


class ContentServiceError(Exception):
    """The AI call failed or returned something unusable. Calls are never retried."""


def strip_code_fences(content: str) -> str:
    # Remove markdown code blocks if present
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]
    return content.strip()


def parse_quiz_questions(content: str) -> List[schemas.QuestionCreate]:
    """
    Turn the model's JSON into question payloads.

    Accepts a bare array or {"questions": [...]}. Entries without text, a known
    type or a correct answer are dropped.
    """
    try:
        data = json.loads(strip_code_fences(content))
    except json.JSONDecodeError as e:
        raise ContentServiceError(f"Failed to parse quiz questions: {e}") from e

    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        data = data["questions"]
    if not isinstance(data, list):
        raise ContentServiceError("AI did not return an array of questions.")

    questions = []
    for item in data:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        qtype = item.get("type")
        answer = item.get("correctAnswer", item.get("correct_answer"))
        if not text or qtype not in QUESTION_TYPES or answer in (None, ""):
            continue
        options = item.get("options")
        if qtype == "multiple-choice" and isinstance(options, list):
            options = [str(o) for o in options][:4]
        else:
            options = None
        questions.append(schemas.QuestionCreate(
            text=str(text),
            type=qtype,
            options=options,
            correct_answer=str(answer),
        ))
    return questions


class ContentService:
    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 model: Optional[str] = None, client=None):
        """Set up the client; without an API key (and no injected client) AI features are disabled"""
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY")
        base_url = base_url or os.getenv("OPENAI_BASE_URL", "https://api.groq.com/openai/v1")
        self.model = model or os.getenv("OPENAI_MODEL", "llama-3.3-70b-versatile")

        if client is not None:
            self.client = client
        elif self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key, base_url=base_url)
        else:
            self.client = None
            print("⚠️  No AI API key configured - AI features disabled")
            print("   Set OPENAI_API_KEY in .env to enable")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def _complete(self, prompt: str, temperature: float = 0.7, max_tokens: int = 1500) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
            content = response.choices[0].message.content
        except Exception as e:
            print(f"❌ Error calling AI API: {e}")
            raise ContentServiceError("Failed to generate content from AI.") from e
        if not content:
            raise ContentServiceError("AI returned an empty response.")
        return content

    async def _safe_text(self, prompt: str) -> str:
        if not self.enabled:
            return AI_DISABLED_MESSAGE
        return await self._complete(prompt)

    async def generate_course_description(self, course_title: str) -> str:
        prompt = (
            f'Write a short, engaging course description for a course titled "{course_title}". '
            "It is shown in a learning management system to students deciding whether to enroll, "
            "so highlight the key learning outcomes. Keep it to 2-3 sentences."
        )
        return await self._safe_text(prompt)

    async def generate_assignment_feedback(self, assignment_title: str, student_submission: str) -> str:
        prompt = f"""You are a teaching assistant reviewing a student's assignment.
Assignment Title: "{assignment_title}"
Student's Submission: "{student_submission}"

Give concise, encouraging feedback: open with something the student did well, then suggest one
area for improvement. Do not assign a grade."""
        return await self._safe_text(prompt)

    async def generate_video_transcript(self, video_title: str) -> str:
        prompt = (
            f'Write a plausible, detailed transcript for an educational video titled "{video_title}". '
            "Use paragraphs, cover the key topics the title suggests and write at least 300 words so "
            "questions about the video can be answered from it. Start directly with the transcript text."
        )
        return await self._safe_text(prompt)

    async def answer_question_about_video(self, question: str, transcript: str) -> str:
        prompt = f"""You help a student who is watching an educational video. This is the video transcript:
---
{transcript}
---
The student asks: "{question}"

Answer only from the transcript. Begin the answer with a plausible timestamp in the form [MM:SS]
showing where in the video the information appears, e.g. "[02:45] Photosynthesis happens in...".
If the transcript does not contain the answer, say so plainly and do not invent information."""
        return await self._safe_text(prompt)

    async def generate_quiz_questions(self, material_text: str) -> List[schemas.QuestionCreate]:
        if not self.enabled:
            raise ContentServiceError(AI_DISABLED_MESSAGE)

        prompt = f"""Based on the course material below, write 3-5 quiz questions mixing
multiple-choice and true/false. Multiple-choice questions have exactly 4 options.

Course Material:
---
{material_text}
---

Return ONLY a JSON array with this exact structure:
[
  {{
    "text": "Question text?",
    "type": "multiple-choice" or "true-false",
    "options": ["A", "B", "C", "D"],
    "correctAnswer": "one of the options, or \\"True\\"/\\"False\\" for true-false"
  }}
]"""
        content = await self._complete(prompt, temperature=0.8, max_tokens=2000)
        return parse_quiz_questions(content)
