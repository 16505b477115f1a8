CREATE_DOCUMENT_PROMPT = (
    "Write about the given topic. Markdown is supported. Use headings wherever appropriate."
)


def update_document_prompt(current_content: str) -> str:
    return f"""\
Improve the following contents of the document based on the given prompt.

{current_content}"""
