from __future__ import annotations

from dataclasses import dataclass

from .base import PromptArgs, PromptBase, TokenBudget, UserPrompt


@dataclass
class ExportToLanguagePromptArgs(PromptArgs):
    language: str = "python"
    include_driver_syntax: bool = False


class ExportToLanguagePrompt(PromptBase[ExportToLanguagePromptArgs]):
    """Transpiles a playground snippet (the request prompt) to a driver language."""

    def get_assistant_prompt(self, args: ExportToLanguagePromptArgs) -> str:
        return f"""You are a MongoDB expert.
Your task is to convert a MongoDB playground script to the {args.language} language.
Take a user prompt as an input string and translate it to the target language.
If the user specified to include driver syntax, add required MongoDB helpers and import statements to the transpiled code.
If the user specified to not include driver syntax, transpile only provided by the user prompt without adding any MongoDB helpers or import statements.
Keep your response concise.
Respond with markdown, suggest code in a Markdown code block that begins with ```{args.language} and ends with ```."""

    def get_user_prompt(
        self, args: ExportToLanguagePromptArgs, model: TokenBudget | None
    ) -> UserPrompt:
        prompt = args.request.prompt
        additional = (
            f'The user provided additional information: "{prompt}"\n' if prompt else ""
        )
        driver = (
            "Include driver syntax."
            if args.include_driver_syntax
            else "Do not include driver syntax."
        )
        return UserPrompt(prompt=f"{additional}{driver}")
