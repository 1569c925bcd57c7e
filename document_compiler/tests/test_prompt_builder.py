from document_compiler.entities import Entity
from document_compiler.models import Message
from document_compiler.prompts.prompt_builder import DocumentContext, build_compilation_prompt, format_history


def test_format_history_labels_and_blank_lines():
    history = [Message('user', 'Fill the CV'), {'role': 'assistant', 'content': 'Done'}]
    assert format_history(history) == "User: Fill the CV\n\nAssistant: Done"

def test_prompt_without_document_is_plain_history():
    prompt = build_compilation_prompt([Message('user', 'hello')])
    assert prompt == "User: hello"

def test_prompt_includes_template_draft_and_entities():
    context = DocumentContext("cv.docx", "docx", "Nome: {{name}}", compiled_content="Nome: Ma")
    entities = [Entity("person", "Mario Rossi", {"email": "mario@x.com"})]

    prompt = build_compilation_prompt([Message('user', 'Compile it')], context, entities)

    assert '"cv.docx"' in prompt
    assert "Nome: {{name}}" in prompt
    assert "{{name}}, ___, [blank] or [TODO]" in prompt
    assert "[PROGRESS]" in prompt
    assert "Nome: Ma\n---" in prompt
    assert "- [person] Mario Rossi" in prompt
    assert prompt.endswith("User: Compile it")

def test_prompt_skips_draft_when_absent():
    context = DocumentContext("cv.txt", "txt", "Nome: ___")
    prompt = build_compilation_prompt([Message('user', 'go')], context)
    assert "Current compiled draft" not in prompt
    assert "Registered entities" not in prompt
