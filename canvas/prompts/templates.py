"""
Prompt Template System

Templates for every generator call, with {variable} interpolation and
validation of missing variables.
"""

from typing import Any, Optional
from string import Formatter

from canvas.exceptions import PromptTemplateError


class PromptTemplate:
    """Reusable template for generating prompts with {variable} placeholders."""

    def __init__(
        self,
        template: str,
        name: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
    ):
        self.template = template.strip()
        self.name = name or "unnamed"
        self.defaults = defaults or {}
        self.required_vars = self._extract_variables()

    def _extract_variables(self) -> set[str]:
        formatter = Formatter()
        variables = set()
        for _, field_name, _, _ in formatter.parse(self.template):
            if field_name is not None:
                base_name = field_name.split(".")[0].split("[")[0]
                if base_name:
                    variables.add(base_name)
        return variables

    def render(self, **kwargs: Any) -> str:
        values = {**self.defaults, **kwargs}
        missing = self.required_vars - set(values.keys())
        if missing:
            raise PromptTemplateError(template_name=self.name, missing_vars=list(missing))
        try:
            return self.template.format(**values)
        except KeyError as e:
            raise PromptTemplateError(template_name=self.name, missing_vars=[str(e)]) from e

    def __repr__(self) -> str:
        return f"PromptTemplate(name='{self.name}', vars={self.required_vars})"


def truncate(text: Optional[str], limit: int) -> str:
    """Clip long context so prompts stay short."""
    if not text:
        return ""
    return text if len(text) <= limit else f"{text[:limit]}..."


# Command Interpretation

INTERPRET_COMMAND_TEMPLATE = PromptTemplate(
    """You are an AI OS assistant controlling a node-based study interface. The user wants to create a new node connected to a previous node.

Current Context (Previous Node Topic): "{context}"
User Command: "{command}"

Determine the most appropriate node type and initial configuration.
If the command is vague (e.g., "next", "practice", "quiz me"), use the Context to define the topic.

Available Types:
- lesson: For learning a new topic (markdown content + chat).
- quiz: For testing knowledge on a topic.
- slides: For visual presentation of a topic.
- code: For programming practice (python, javascript, sql, etc).
- media: For analyzing images or videos.
- live: For starting a voice conversation.

Return JSON:
{{
  "type": "lesson" | "quiz" | "slides" | "code" | "media" | "live",
  "data": {{
     "topic": "Explicit topic from command OR derived from context.",
     "language": "programming language" (only for code),
     "code": "starter code if requested" (only for code),
     "media_url": "url if provided" (only for media)
  }}
}}""",
    name="interpret_command",
)


# Course Planning

STUDY_PLAN_TEMPLATE = PromptTemplate(
    """Prepare a high-level exam strategy and study plan.{resources}
{focus}
Focus on the top 3-5 critical areas to master based on the provided context.""",
    name="study_plan",
)

COURSE_STRUCTURE_TEMPLATE = PromptTemplate(
    """Create a structured course for '{topic}' based on the plan below.
Plan Summary: {plan}

Return a valid JSON object ONLY:
{{
  "title": "Course Title",
  "description": "Short description",
  "modules": [
    {{ "id": "1", "title": "Module Name", "description": "Brief summary", "concepts": ["Key Concept 1"] }}
  ]
}}""",
    name="course_structure",
)


# Node Content

LESSON_CONTENT_TEMPLATE = PromptTemplate(
    """Create a lesson for "{module_title}" in "{topic}".
Return JSON:
{{
  "markdownContent": "Detailed explanation with markdown.",
  "slides": [{{ "title": "Slide Title", "bullets": ["Point 1"], "imagePrompt": "Visual description" }}],
  "quiz": [{{ "question": "Q1", "options": ["A","B"], "correctIndex": 0, "explanation": "Why" }}],
  "suggestedQuestions": ["Question 1", "Question 2", "Question 3"]
}}
Keep it concise.""",
    name="lesson_content",
)

QUIZ_TEMPLATE = PromptTemplate(
    """Create a {question_count}-question multiple choice quiz for "{topic}". {context}
Return JSON array of objects: [{{ "question": "...", "options": ["..."], "correctIndex": 0, "explanation": "..." }}]""",
    name="quiz",
    defaults={"question_count": 5, "context": ""},
)

SLIDES_TEMPLATE = PromptTemplate(
    """Create a {slide_count}-slide presentation for "{topic}". {context}
Return JSON array: [{{ "title": "...", "bullets": ["..."], "imagePrompt": "Visual description for slide" }}]""",
    name="slides",
    defaults={"slide_count": 5, "context": ""},
)

EXECUTE_CODE_TEMPLATE = PromptTemplate(
    """Act as a {language} interpreter. Execute the following code and return ONLY the output.
Do not explain the code.
If there is an error, return the error message.

Code:
```{language}
{code}
```""",
    name="execute_code",
)

MEDIA_ANALYSIS_PROMPT = "Analyze this media and generate a study summary with key points and educational value."


# Node Chat

LESSON_CHAT_CONTEXT_TEMPLATE = PromptTemplate(
    """You are a study tutor answering questions about one lesson.
Context: {context}
Topic: {topic}""",
    name="lesson_chat_context",
)

CODE_TUTOR_CONTEXT_TEMPLATE = PromptTemplate(
    """You are a patient {language} coding tutor. Give hints before full solutions and keep answers short.
The student's current code:
```{language}
{code}
```""",
    name="code_tutor_context",
)

CHAT_TEMPLATE = PromptTemplate(
    """{system_context}

Conversation so far:
{transcript}

Student: {message}
Tutor:""",
    name="chat",
    defaults={"transcript": "(none)"},
)
