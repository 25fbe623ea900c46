"""Best-effort translation of LaTeX math into Typst math notation."""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Set, Tuple

from .core import LOG


class LatexTranslationError(ValueError):
    pass


_TOKEN_RE = re.compile(r"\\[A-Za-z]+\*?|\\.|\d+(?:\.\d+)?|\s+|.", re.DOTALL)

GREEK: Dict[str, str] = {
    name: name
    for name in (
        "alpha beta gamma delta zeta eta theta iota kappa lambda mu nu xi pi rho sigma tau upsilon chi psi omega "
        "Gamma Delta Theta Lambda Xi Pi Sigma Upsilon Phi Psi Omega"
    ).split()
}
GREEK.update(
    {
        "epsilon": "epsilon.alt",
        "varepsilon": "epsilon",
        "phi": "phi.alt",
        "varphi": "phi",
        "vartheta": "theta.alt",
        "varpi": "pi.alt",
        "varrho": "rho.alt",
        "varsigma": "sigma.alt",
    }
)

SYMBOLS: Dict[str, str] = {
    **GREEK,
    "infty": "infinity",
    "cdot": "dot",
    "times": "times",
    "div": "div",
    "pm": "plus.minus",
    "mp": "minus.plus",
    "leq": "<=",
    "le": "<=",
    "geq": ">=",
    "ge": ">=",
    "neq": "!=",
    "ne": "!=",
    "ll": "<<",
    "gg": ">>",
    "approx": "approx",
    "equiv": "equiv",
    "sim": "tilde.op",
    "simeq": "tilde.eq",
    "cong": "tilde.equiv",
    "propto": "prop",
    "to": "->",
    "rightarrow": "->",
    "longrightarrow": "-->",
    "leftarrow": "<-",
    "gets": "<-",
    "leftrightarrow": "<->",
    "Rightarrow": "=>",
    "implies": "==>",
    "Leftarrow": "arrow.l.double",
    "Leftrightarrow": "<=>",
    "iff": "<==>",
    "mapsto": "|->",
    "in": "in",
    "notin": "in.not",
    "ni": "in.rev",
    "subset": "subset",
    "subseteq": "subset.eq",
    "supset": "supset",
    "supseteq": "supset.eq",
    "cup": "union",
    "cap": "sect",
    "setminus": "without",
    "emptyset": "emptyset",
    "varnothing": "emptyset",
    "forall": "forall",
    "exists": "exists",
    "neg": "not",
    "lnot": "not",
    "land": "and",
    "wedge": "and",
    "lor": "or",
    "vee": "or",
    "partial": "diff",
    "nabla": "nabla",
    "sum": "sum",
    "prod": "product",
    "int": "integral",
    "iint": "integral.double",
    "iiint": "integral.triple",
    "oint": "integral.cont",
    "ldots": "dots.h",
    "dots": "dots.h",
    "cdots": "dots.c",
    "vdots": "dots.v",
    "ddots": "dots.down",
    "circ": "compose",
    "bullet": "bullet",
    "star": "star",
    "ast": "ast",
    "angle": "angle",
    "perp": "perp",
    "parallel": "parallel",
    "mid": "divides",
    "prime": "prime",
    "hbar": "ħ",
    "ell": "ℓ",
    "langle": "angle.l",
    "rangle": "angle.r",
    "lfloor": "floor.l",
    "rfloor": "floor.r",
    "lceil": "ceil.l",
    "rceil": "ceil.r",
    "vert": "|",
    "Vert": "||",
    "|": "||",
    "{": "{",
    "}": "}",
    "%": "%",
    "&": "amp",
    "_": "\\_",
    "#": "\\#",
    "$": "\\$",
    ",": "thin",
    ":": "med",
    ">": "med",
    ";": "thick",
    " ": "space",
    "quad": "quad",
    "qquad": "wide",
    "bmod": "mod",
}

FUNCTIONS: Set[str] = set(
    "sin cos tan cot sec csc arcsin arccos arctan sinh cosh tanh coth log ln lg exp lim liminf limsup "
    "max min sup inf det gcd lcm deg dim ker arg hom Pr mod".split()
)

DROPPED: Set[str] = {
    "limits",
    "nolimits",
    "displaystyle",
    "textstyle",
    "scriptstyle",
    "!",
    "big",
    "Big",
    "bigg",
    "Bigg",
    "bigl",
    "bigr",
    "Bigl",
    "Bigr",
    "biggl",
    "biggr",
}

ACCENTS: Dict[str, str] = {
    "hat": "hat",
    "widehat": "hat",
    "bar": "macron",
    "overline": "overline",
    "underline": "underline",
    "vec": "arrow",
    "overrightarrow": "arrow",
    "tilde": "tilde",
    "widetilde": "tilde",
    "dot": "dot",
    "ddot": "dot.double",
    "overbrace": "overbrace",
    "underbrace": "underbrace",
    "mathbf": "bold",
    "boldsymbol": "bold",
    "mathit": "italic",
    "mathrm": "upright",
    "mathbb": "bb",
    "mathcal": "cal",
    "mathfrak": "frak",
    "mathsf": "sans",
    "mathtt": "mono",
}

TEXT_COMMANDS: Set[str] = {"text", "textrm", "textit", "textnormal", "mbox", "mathnormal"}

FRACTIONS: Dict[str, str] = {
    "frac": "frac",
    "dfrac": "frac",
    "tfrac": "frac",
    "cfrac": "frac",
    "binom": "binom",
    "dbinom": "binom",
    "tbinom": "binom",
}

MATRIX_DELIMS: Dict[str, Optional[str]] = {
    "matrix": "#none",
    "smallmatrix": "#none",
    "array": "#none",
    "pmatrix": None,
    "bmatrix": '"["',
    "Bmatrix": '"{"',
    "vmatrix": '"|"',
    "Vmatrix": '"||"',
}
ALIGNED_ENVS: Set[str] = {"aligned", "align", "align*", "gathered", "gather", "gather*", "split", "eqnarray", "eqnarray*"}

_PLAIN_ESCAPES: Dict[str, str] = {
    '"': '\\"',
    "#": "\\#",
    "$": "\\$",
    "/": "\\/",
    "~": "space",
}

_ROW_STOPS = {"&", "\\\\", "\\end"}


def _join(atoms: List[str]) -> str:
    return " ".join(atom for atom in atoms if atom)


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class _Parser:
    def __init__(self, source: str) -> None:
        self.tokens: List[str] = _TOKEN_RE.findall(source)
        self.pos = 0

    def parse(self) -> str:
        atoms = self._sequence(set())
        tok = self._peek()
        if tok is not None:
            raise LatexTranslationError(f"unexpected {tok!r}")
        return _join(atoms)

    def _peek(self) -> Optional[str]:
        while self.pos < len(self.tokens) and self.tokens[self.pos].isspace():
            self.pos += 1
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Optional[str]:
        tok = self._peek()
        if tok is not None:
            self.pos += 1
        return tok

    def _expect(self, expected: str) -> None:
        tok = self._next()
        if tok != expected:
            raise LatexTranslationError(f"expected {expected!r}, found {tok!r}")

    def _sequence(self, stops: Set[str]) -> List[str]:
        atoms: List[str] = []
        while True:
            tok = self._peek()
            if tok is None or tok in stops:
                return atoms
            if tok == "}":
                raise LatexTranslationError("unbalanced '}'")
            if tok == "{":
                self.pos += 1
                atoms.extend(self._sequence({"}"}))
                self._expect("}")
                continue
            if tok in ("^", "_"):
                self.pos += 1
                arg, count = self._argument()
                base = atoms.pop() if atoms else '""'
                atoms.append(f"{base}{tok}{arg if count <= 1 else '(' + arg + ')'}")
                continue
            if tok == "'":
                self.pos += 1
                if atoms:
                    atoms[-1] += "'"
                else:
                    atoms.append("prime")
                continue
            atom = self._atom()
            if atom:
                atoms.append(atom)

    def _argument(self) -> Tuple[str, int]:
        tok = self._peek()
        if tok is None:
            raise LatexTranslationError("missing argument")
        if tok in ("}", "^", "_", "&"):
            raise LatexTranslationError(f"unexpected {tok!r} where an argument was expected")
        if tok == "{":
            self.pos += 1
            atoms = self._sequence({"}"})
            self._expect("}")
            return _join(atoms), len(atoms)
        if tok[0].isdigit() and len(tok) > 1:
            # \frac12 and x^12 take a single digit.
            self.tokens[self.pos] = tok[1:]
            return tok[0], 1
        atom = self._atom()
        return atom or "", 1

    def _raw_group(self) -> str:
        self._expect("{")
        depth = 1
        parts: List[str] = []
        while self.pos < len(self.tokens):
            tok = self.tokens[self.pos]
            self.pos += 1
            if tok == "{":
                depth += 1
            elif tok == "}":
                depth -= 1
                if depth == 0:
                    return "".join(parts)
            parts.append(tok)
        raise LatexTranslationError("unterminated group")

    def _atom(self) -> Optional[str]:
        tok = self._next()
        if tok is None:
            raise LatexTranslationError("unexpected end of input")
        if tok.startswith("\\") and len(tok) > 1:
            return self._command(tok[1:])
        if tok == "&":
            return "&"
        return _PLAIN_ESCAPES.get(tok, tok)

    def _command(self, name: str) -> Optional[str]:
        if name == "\\":
            return "\\"
        if name in DROPPED:
            return None
        if name in ("left", "right"):
            if self._peek() == ".":
                self.pos += 1
            return None
        if name in SYMBOLS:
            return SYMBOLS[name]
        if name in FUNCTIONS:
            return name
        if name in FRACTIONS:
            first, _ = self._argument()
            second, _ = self._argument()
            return f"{FRACTIONS[name]}({first}, {second})"
        if name == "sqrt":
            return self._sqrt()
        if name in ACCENTS:
            arg, _ = self._argument()
            return f"{ACCENTS[name]}({arg})"
        if name in TEXT_COMMANDS:
            return _quote(self._raw_group())
        if name == "textbf":
            return f"bold({_quote(self._raw_group())})"
        if name in ("operatorname", "operatorname*"):
            return f"op({_quote(self._raw_group().strip())})"
        if name == "pmod":
            arg, _ = self._argument()
            return f"(mod {arg})"
        if name == "begin":
            return self._environment(self._raw_group().strip())
        raise LatexTranslationError(f"unsupported command \\{name}")

    def _sqrt(self) -> str:
        index: Optional[str] = None
        if self._peek() == "[":
            self.pos += 1
            index = _join(self._sequence({"]"}))
            self._expect("]")
        if self._peek() is None:
            radicand = '""'
        else:
            radicand, _ = self._argument()
        if index:
            return f"root({index}, {radicand})"
        return f"sqrt({radicand})"

    def _environment(self, env: str) -> str:
        if env not in MATRIX_DELIMS and env not in ALIGNED_ENVS and env != "cases":
            raise LatexTranslationError(f"unsupported environment {env}")
        if env == "array" and self._peek() == "{":
            self._raw_group()

        rows: List[List[str]] = [[]]
        while True:
            cell = _join(self._sequence(_ROW_STOPS))
            rows[-1].append(cell)
            tok = self._next()
            if tok is None:
                raise LatexTranslationError(f"unterminated environment {env}")
            if tok == "&":
                continue
            if tok == "\\\\":
                rows.append([])
                continue
            closing = self._raw_group().strip()
            if closing != env:
                raise LatexTranslationError(f"\\begin{{{env}}} closed by \\end{{{closing}}}")
            break
        if rows and all(not cell for cell in rows[-1]):
            rows.pop()

        if env == "cases":
            return "cases(" + ", ".join(" & ".join(row) for row in rows) + ")"
        if env in ALIGNED_ENVS:
            return " \\ ".join(" & ".join(row) for row in rows)
        body = "; ".join(", ".join(cell or '""' for cell in row) for row in rows)
        delim = MATRIX_DELIMS[env]
        if delim is None:
            return f"mat({body})"
        return f"mat(delim: {delim}, {body})"


def latex_to_typst(latex: str) -> str:
    processed = (latex or "").replace("√", "\\sqrt ")
    return _Parser(processed).parse()


def safe_latex_to_typst(latex: str) -> str:
    try:
        return latex_to_typst(latex)
    except Exception as exc:
        LOG.debug("Math translation fell back to source for %r: %s", latex, exc)
        return latex
