'''
gramática declarativa del lenguaje ensamblador (lark, LALR + lexer contextual)
'''

from __future__ import annotations
from lark import Lark

# La gramática es datos: el parser solo la carga, y parser.py construye el AST
# a partir del árbol que produce. Secciones en mayúsculas, mnemónicos sin distinción.
GRAMMAR = r"""
start: _NL* _section*

_section: isae_section
        | libs_section
        | const_section
        | data_section
        | main_section
        | routine_section

isae_section: ".ISAE" _NL+ (isae_decl _NL+)*
isae_decl: NAME

libs_section: ".LIBS" _NL+ (lib_decl _NL+)*
lib_decl: NAME ("=" LIB_ID)?

const_section: ".CONST" _NL+ (const_decl _NL+)*
const_decl: NAME "=" number

data_section: ".DATA" _NL+ (data_decl _NL+)*
data_decl: NAME "=" STRING                      -> string_data
         | NAME "=" NAME number ("," number)*   -> typed_data

main_section: MAIN _NL+ _body
routine_section: ROUTINE NAME _NL+ _body

_body: (_statement _NL+)*
_statement: label
          | instruction
          | label instruction

label: NAME ":"
instruction: NAME operands?
operands: _operand ("," _operand)*
_operand: register
        | number
        | lib_call
        | symbol

register: NAME "[" number "]"
lib_call: NAME "." NAME
symbol: NAME
number: NUMBER

MAIN: ".MAIN"
ROUTINE: ".ROUTINE"
LIB_ID: /[a-z][a-z0-9]*:[0-9a-fA-F]+/
NAME: /[A-Za-z_][A-Za-z0-9_]*/
NUMBER: /[+-]?(0[xX][0-9a-fA-F]+(_[0-9a-fA-F]+)*|0[bB][01]+(_[01]+)*|0[oO][0-7]+(_[0-7]+)*|[0-9]+(_[0-9]+)*)/
STRING: /"(\\.|[^"\\\n])*"/
COMMENT: /(;|\/\/|#)[^\n]*/
_NL: /\r?\n/

%import common.WS_INLINE
%ignore WS_INLINE
%ignore COMMENT
"""

# Nombres legibles para terminales con patrón de expresión regular
_TERMINAL_LABELS = {
    "_NL": "fin de línea",
    "$END": "fin de fichero",
    "NAME": "identificador",
    "NUMBER": "número",
    "STRING": "cadena",
    "LIB_ID": "id de librería",
}

def build_parser() -> Lark:
    """Construye el parser LALR a partir de GRAMMAR."""
    return Lark(GRAMMAR, parser="lalr", lexer="contextual", propagate_positions=True)

def describe_terminal(parser: Lark, name: str) -> str:
    """Nombre de terminal → texto para 'se esperaba ...'."""
    if name in _TERMINAL_LABELS:
        return _TERMINAL_LABELS[name]
    try:
        term = parser.get_terminal(name)
    except KeyError:
        return name
    if term.pattern.type == "str":
        return f'"{term.pattern.value}"'
    return name
