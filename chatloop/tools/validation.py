import jsonschema

from chatloop.tools.base import Tool, normalize_schema


class ToolValidator:
    @staticmethod
    def validate(tool: Tool, arguments: object) -> tuple[bool, str | None]:
        if tool.input_schema is None:
            return True, None
        try:
            jsonschema.validate(
                instance=arguments,
                schema=normalize_schema(tool.input_schema),
            )
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)
