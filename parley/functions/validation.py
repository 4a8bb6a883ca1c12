import jsonschema

from parley.functions.base import FunctionDescriptor


class ArgumentValidator:
    @staticmethod
    def validate(descriptor: FunctionDescriptor, arguments: dict) -> tuple[bool, str | None]:
        try:
            jsonschema.validate(instance=arguments, schema=descriptor.parameters)
            return True, None
        except jsonschema.ValidationError as e:
            return False, str(e.message)
