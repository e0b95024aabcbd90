from __future__ import annotations

import re
from pathlib import Path
from typing import Callable

# Every generated program defines f0..f<n-1> and a main that sums all of
# them, so no compiler can drop the functions as unused.


def _c(n: int, name: str) -> str:
    out = ["#include <stdio.h>", ""]
    for i in range(n):
        out.append(f"int f{i}(int x) {{ int y = x * {i % 7 + 1}; return y + {i}; }}")
    out += ["", "int main(void) {", "    long total = 0;"]
    out += [f"    total += f{i}({i});" for i in range(n)]
    out += ['    printf("%ld\\n", total);', "    return 0;", "}"]
    return "\n".join(out)


def _cpp(n: int, name: str) -> str:
    out = ["#include <iostream>", ""]
    for i in range(n):
        out.append(f"int f{i}(int x) {{ auto y = x * {i % 7 + 1}; return y + {i}; }}")
    out += ["", "int main() {", "    long total = 0;"]
    out += [f"    total += f{i}({i});" for i in range(n)]
    out += ["    std::cout << total << std::endl;", "    return 0;", "}"]
    return "\n".join(out)


def _d(n: int, name: str) -> str:
    out = ["import std.stdio;", ""]
    for i in range(n):
        out.append(f"int f{i}(int x) {{ auto y = x * {i % 7 + 1}; return y + {i}; }}")
    out += ["", "void main() {", "    long total = 0;"]
    out += [f"    total += f{i}({i});" for i in range(n)]
    out += ["    writeln(total);", "}"]
    return "\n".join(out)


def _go(n: int, name: str) -> str:
    out = ["package main", "", 'import "fmt"', ""]
    for i in range(n):
        out.append(f"func f{i}(x int) int {{ y := x * {i % 7 + 1}; return y + {i} }}")
    out += ["", "func main() {", "\ttotal := 0"]
    out += [f"\ttotal += f{i}({i})" for i in range(n)]
    out += ["\tfmt.Println(total)", "}"]
    return "\n".join(out)


def _rust(n: int, name: str) -> str:
    out = []
    for i in range(n):
        out.append(f"fn f{i}(x: i64) -> i64 {{ let y = x * {i % 7 + 1}; y + {i} }}")
    out += ["", "fn main() {", "    let mut total: i64 = 0;"]
    out += [f"    total += f{i}({i});" for i in range(n)]
    out += ['    println!("{}", total);', "}"]
    return "\n".join(out)


def _swift(n: int, name: str) -> str:
    out = []
    for i in range(n):
        out.append(f"func f{i}(_ x: Int) -> Int {{ let y = x * {i % 7 + 1}; return y + {i} }}")
    out += ["", "var total = 0"]
    out += [f"total += f{i}({i})" for i in range(n)]
    out += ["print(total)"]
    return "\n".join(out)


def _ocaml(n: int, name: str) -> str:
    out = []
    for i in range(n):
        out.append(f"let f{i} x = let y = x * {i % 7 + 1} in y + {i}")
    out += ["", "let () =", "  let total = ref 0 in"]
    out += [f"  total := !total + f{i} {i};" for i in range(n)]
    out += ["  print_int !total;", "  print_newline ()"]
    return "\n".join(out)


def _haskell(n: int, name: str) -> str:
    out = ["module Main where", ""]
    for i in range(n):
        out.append(f"f{i} :: Int -> Int")
        out.append(f"f{i} x = let y = x * {i % 7 + 1} in y + {i}")
    calls = ", ".join(f"f{i} {i}" for i in range(n))
    out += ["", "main :: IO ()", f"main = print (sum [{calls}])"]
    return "\n".join(out)


def _java(n: int, name: str) -> str:
    out = [f"public class {name} {{"]
    for i in range(n):
        out.append(f"    static int f{i}(int x) {{ int y = x * {i % 7 + 1}; return y + {i}; }}")
    out += ["", "    public static void main(String[] args) {", "        long total = 0;"]
    out += [f"        total += f{i}({i});" for i in range(n)]
    out += ["        System.out.println(total);", "    }", "}"]
    return "\n".join(out)


def _scala(n: int, name: str) -> str:
    out = [f"object {name} {{"]
    for i in range(n):
        out.append(f"  def f{i}(x: Int): Int = {{ val y = x * {i % 7 + 1}; y + {i} }}")
    out += ["", "  def main(args: Array[String]): Unit = {", "    var total = 0L"]
    out += [f"    total += f{i}({i})" for i in range(n)]
    out += ["    println(total)", "  }", "}"]
    return "\n".join(out)


def _kotlin(n: int, name: str) -> str:
    out = []
    for i in range(n):
        out.append(f"fun f{i}(x: Int): Int {{ val y = x * {i % 7 + 1}; return y + {i} }}")
    out += ["", "fun main() {", "    var total = 0L"]
    out += [f"    total += f{i}({i})" for i in range(n)]
    out += ["    println(total)", "}"]
    return "\n".join(out)


def _csharp(n: int, name: str) -> str:
    out = ["using System;", "", f"public static class {name}", "{"]
    for i in range(n):
        out.append(f"    static int f{i}(int x) {{ var y = x * {i % 7 + 1}; return y + {i}; }}")
    out += ["", "    public static void Main()", "    {", "        long total = 0;"]
    out += [f"        total += f{i}({i});" for i in range(n)]
    out += ["        Console.WriteLine(total);", "    }", "}"]
    return "\n".join(out)


def _fsharp(n: int, name: str) -> str:
    out = [f"module {name}", ""]
    for i in range(n):
        out.append(f"let f{i} x = let y = x * {i % 7 + 1} in y + {i}")
    out += ["", "[<EntryPoint>]", "let main _ =", "    let mutable total = 0L"]
    out += [f"    total <- total + int64 (f{i} {i})" for i in range(n)]
    out += ["    printfn \"%d\" total", "    0"]
    return "\n".join(out)


def _nim(n: int, name: str) -> str:
    out = []
    for i in range(n):
        out.append(f"proc f{i}(x: int): int = x * {i % 7 + 1} + {i}")
    out += ["", "var total = 0"]
    out += [f"total += f{i}({i})" for i in range(n)]
    out += ["echo total"]
    return "\n".join(out)


def _crystal(n: int, name: str) -> str:
    out = []
    for i in range(n):
        out.append(f"def f{i}(x : Int32) : Int32")
        out.append(f"  x * {i % 7 + 1} + {i}")
        out.append("end")
    out += ["", "total = 0_i64"]
    out += [f"total += f{i}({i})" for i in range(n)]
    out += ["puts total"]
    return "\n".join(out)


_GENERATORS: dict[str, Callable[[int, str], str]] = {
    "c": _c,
    "c++": _cpp,
    "cpp": _cpp,
    "d": _d,
    "go": _go,
    "rust": _rust,
    "swift": _swift,
    "ocaml": _ocaml,
    "haskell": _haskell,
    "java": _java,
    "scala": _scala,
    "kotlin": _kotlin,
    "csharp": _csharp,
    "c#": _csharp,
    "fsharp": _fsharp,
    "f#": _fsharp,
    "nim": _nim,
    "crystal": _crystal,
}


def supported_languages() -> list[str]:
    return sorted(_GENERATORS)


def _type_name(path: Path) -> str:
    # Java/Scala/C#/F# want an identifier derived from the file name.
    stem = re.sub(r"[^0-9A-Za-z_]", "_", path.stem)
    if not stem or stem[0].isdigit():
        stem = f"_{stem}"
    return stem[0].upper() + stem[1:] if path.suffix == ".fs" else stem


class SourceGenerator:
    def generate(self, language: str, num_functions: int, path: Path) -> Path:
        gen = _GENERATORS.get(language.strip().lower())
        if gen is None:
            raise ValueError(f"No source generator for language: {language}")
        if num_functions < 0:
            raise ValueError("num_functions must be >= 0")
        if path.exists():
            return path

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(gen(num_functions, _type_name(path)) + "\n", encoding="utf-8")
        return path
