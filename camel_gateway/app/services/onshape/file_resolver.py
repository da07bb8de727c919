"""
File resolver

Reads the files that the Camel feature stores inside a Part Studio. Two
storage generations exist:

- current: one state map variable, files under state.files (name -> contents)
- legacy:  an index variable mapping name -> variable name, with each file's
           contents stored in its own variable

Readers for each generation are tried in that order, and a document with
neither yields no files. Each reader signals "schema not present" by
returning None, which the remote script produces by throwing.
"""

import logging
import re
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol, Tuple

from camel_gateway.app.models.document import DocumentContext
from camel_gateway.app.models.typed_value import (
    FSString,
    TypedValue,
    string_list,
    string_map,
)
from camel_gateway.app.services.onshape.errors import GatewayError, NotFoundError, SchemaError
from camel_gateway.app.services.onshape.script_builder import build_script, map_literal, string_literal

logger = logging.getLogger(__name__)

STATE_VARIABLE = "camelState"
INDEX_VARIABLE = "camelFileIndex"

VARIABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Evaluator(Protocol):
    async def evaluate(self, context: DocumentContext, script: str) -> Optional[TypedValue]:
        ...


class CurrentSchemaReader:
    """Files stored in the state map variable"""

    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    async def file_names(self, context: DocumentContext) -> Optional[List[str]]:
        result = await self.evaluator.evaluate(context, build_script(f"""
            try silent {{
                var state = getVariable(context, "{STATE_VARIABLE}");
                if (state.files is map) {{
                    return keys(state.files);
                }}
            }}
            throw "No file state";
        """))
        if result is None:
            return None
        return string_list(result, "file names")

    async def file_contents(self, context: DocumentContext, file_name: str) -> Optional[str]:
        result = await self.evaluator.evaluate(context, build_script(f"""
            try silent {{
                var state = getVariable(context, "{STATE_VARIABLE}");
                var contents = state.files[{string_literal(file_name)}];
                if (contents is string) {{
                    return contents;
                }}
            }}
            throw "File not found";
        """))
        if result is None:
            return None
        if not isinstance(result, FSString):
            raise NotFoundError(f"File not found: {file_name}")
        return result.value

    async def all_file_contents(self, context: DocumentContext) -> Optional[Dict[str, str]]:
        result = await self.evaluator.evaluate(context, build_script(f"""
            try silent {{
                var state = getVariable(context, "{STATE_VARIABLE}");
                if (state.files is map) {{
                    return state.files;
                }}
            }}
            throw "No file state";
        """))
        if result is None:
            return None
        return string_map(result, "files")


class LegacySchemaReader:
    """Files stored one per variable, located through the index variable"""

    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    async def read_index(self, context: DocumentContext) -> Optional[Dict[str, str]]:
        """File name -> variable name, or None if the document has no index"""
        result = await self.evaluator.evaluate(context, build_script(f"""
            try silent {{
                var index = getVariable(context, "{INDEX_VARIABLE}");
                if (index is map) {{
                    return index;
                }}
            }}
            throw "No file index";
        """))
        if result is None:
            return None
        index = string_map(result, "file index")
        for variable in index.values():
            if not VARIABLE_NAME_PATTERN.match(variable):
                raise SchemaError(f"Malformed file index entry: {variable!r}")
        return index

    async def dereference(self, context: DocumentContext, variable: str) -> Optional[str]:
        result = await self.evaluator.evaluate(context, build_script(f"""
            try silent {{
                var contents = getVariable(context, {string_literal(variable)});
                if (contents is string) {{
                    return contents;
                }}
            }}
            throw "File not found";
        """))
        if not isinstance(result, FSString):
            return None
        return result.value

    async def dereference_all(self, context: DocumentContext, index: Dict[str, str]) -> Dict[str, str]:
        result = await self.evaluator.evaluate(context, build_script(f"""
            var index = {map_literal(index.items())};
            var files = {{}};
            for (var entry in index) {{
                files[entry.key] = getVariable(context, entry.value);
            }}
            return files;
        """))
        return string_map(result, "files")


class FileResolver:
    """
    File names and contents for a Part Studio

    Raises only AuthError, TransportError, SchemaError and NotFoundError.
    """

    def __init__(self, evaluator: Evaluator):
        self.current = CurrentSchemaReader(evaluator)
        self.legacy = LegacySchemaReader(evaluator)

    async def list_file_names(self, context: DocumentContext) -> List[str]:
        with _error_boundary("Could not get the file index"):
            names = await self.current.file_names(context)
            if names is not None:
                return names
            index = await self.legacy.read_index(context)
            if index is not None:
                return list(index)
            return []

    async def get_file_contents(self, context: DocumentContext, file_name: str) -> str:
        with _error_boundary("Could not download the file"):
            contents = await self.current.file_contents(context, file_name)
            if contents is not None:
                return contents

            index = await self.legacy.read_index(context)
            variable = (index or {}).get(file_name)
            if variable is not None:
                contents = await self.legacy.dereference(context, variable)
                if contents is not None:
                    return contents

            raise NotFoundError(f"File not found: {file_name}")

    async def get_all_file_contents(self, context: DocumentContext) -> List[Tuple[str, str]]:
        with _error_boundary("Could not get the file contents"):
            files = await self.current.all_file_contents(context)
            if files is not None:
                return list(files.items())

            index = await self.legacy.read_index(context)
            if not index:
                return []
            files = await self.legacy.dereference_all(context, index)
            return list(files.items())


@contextmanager
def _error_boundary(message: str) -> Iterator[None]:
    try:
        yield
    except GatewayError as e:
        logger.warning(f"{message}: {e}")
        raise
    except (ValueError, KeyError, TypeError) as e:
        logger.error(f"{message}: {e}", exc_info=True)
        raise SchemaError(message) from e
