QUESTION_SCHEMA = """
{{"questions": [{{"text": "Question text?", "options": ["A", "B", "C", "D"], "correctOptionIndex": 2}}]}}
"""

PROMPTS = {
    "module_quiz": {
        "transcript": """
        You are an educational content creator writing quizzes for online courses.
        Below is the transcript of a video for the module "{title}".
        Generate {count} multiple-choice questions based only on facts in the transcript.
        Each question has exactly 4 options and exactly one correct answer;
        correctOptionIndex is the 0-based index of that answer.
        Output ONLY valid JSON. No markdown tags. Schema:
        """ + QUESTION_SCHEMA + """
        Transcript:
        {content}
        """,
        "video": """
        You are an expert in creating educational content.
        Watch the video at the URL provided and create a {count}-question multiple-choice quiz
        for the module "{title}".
        Each question has exactly 4 options and exactly one correct answer;
        correctOptionIndex is the 0-based index of that answer.
        Output ONLY valid JSON. No markdown tags. Schema:
        """ + QUESTION_SCHEMA
    },
    "final_test": {
        "from_modules": """
        You are an expert in creating educational assessments for the course "{title}".
        Based on the module quizzes below, write {count} new multiple-choice questions
        closely related to them but not identical.
        Each question has exactly 4 options and exactly one correct answer;
        correctOptionIndex is the 0-based index of that answer.
        Output ONLY valid JSON. No markdown tags. Schema:
        """ + QUESTION_SCHEMA + """
        Module quizzes:
        {content}
        """
    },
    "explain": {
        "standard": """
        You are an assessment specialist giving encouraging feedback on quiz answers.
        For each question say briefly whether the selected answer is correct and why.
        Output ONLY a JSON array, one object per question, with keys
        "question", "feedback". No markdown tags.
        {content}
        """
    }
}
