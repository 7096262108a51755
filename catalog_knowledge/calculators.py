"""
Catalog Knowledge — Engineering Calculators

Responsibilities:
  1. Calculator descriptors: formula handlers with validated numeric inputs
  2. Detectors: regex extractors that pull a calculator's inputs out of a
     shopper's message, converting units to the calculator's canonical units
  3. Registry: an explicit, read-only collection built once at startup
  4. Executor: runs every calculator whose detector fires on a message

Detection is best-effort. A message that lacks a required measurement simply
does not trigger that calculator, and a calculator that fails validation or
raises is logged and left out of the results.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Iterator, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

LPM_TO_GPM = 0.264172
BAR_TO_PSI = 14.5038
KPA_TO_PSI = 0.145038


# ============================================================
# Descriptor Types
# ============================================================

class CalculatorField(BaseModel):
    type: str = "number"
    required: bool = True
    description: Optional[str] = None
    unit: Optional[str] = None


class OutputField(BaseModel):
    type: str = "number"
    unit: Optional[str] = None


Handler = Callable[[Any], Awaitable[dict[str, Any]]]
Detector = Callable[[str], Optional[dict[str, float]]]


@dataclass(frozen=True)
class CalculatorDescriptor:
    id: str
    label: str
    description: str
    input_model: type[BaseModel]
    handler: Handler
    input_schema: dict[str, CalculatorField] = field(default_factory=dict)
    output_schema: dict[str, OutputField] = field(default_factory=dict)
    applies_to: tuple[str, ...] = ()

    async def run(self, raw_input: dict[str, Any]) -> dict[str, Any]:
        """Validate inputs (raises pydantic.ValidationError) and invoke the handler."""
        parsed = self.input_model.model_validate(raw_input)
        return await self.handler(parsed)


@dataclass(frozen=True)
class Calculator:
    """A descriptor together with the detector that feeds it."""
    descriptor: CalculatorDescriptor
    detector: Detector

    @property
    def id(self) -> str:
        return self.descriptor.id


class CalculatorExecutionResult(BaseModel):
    id: str
    label: str
    inputs: dict[str, float]
    outputs: dict[str, Any]
    description: Optional[str] = None


# ============================================================
# Valve Flow Coefficient
# ============================================================

class CvInput(BaseModel):
    flow_gpm: float = Field(gt=0)
    specific_gravity: float = Field(default=1.0, gt=0)
    delta_p_psi: float = Field(gt=0)


async def _cv_handler(inp: CvInput) -> dict[str, Any]:
    cv = inp.flow_gpm / math.sqrt(inp.specific_gravity * inp.delta_p_psi)
    return {
        'cv_required': round(cv, 3),
        'formula': 'Cv = Q / sqrt(SG × ΔP)',
    }


CV_FROM_FLOW = CalculatorDescriptor(
    id='cv_from_flow',
    label='Valve flow coefficient',
    description='Computes required Cv to support a desired flow given '
                'specific gravity and pressure drop.',
    input_model=CvInput,
    handler=_cv_handler,
    input_schema={
        'flow_gpm': CalculatorField(unit='gpm', description='Desired flow rate'),
        'specific_gravity': CalculatorField(
            required=False, description='Fluid specific gravity (default 1.0)'),
        'delta_p_psi': CalculatorField(
            unit='psi', description='Allowable pressure drop across the valve'),
    },
    output_schema={'cv_required': OutputField(unit='Cv')},
    applies_to=('flow', 'valves', 'pumps'),
)


# ============================================================
# Bolt Torque
# ============================================================

class BoltTorqueInput(BaseModel):
    fastener_diameter_mm: float = Field(gt=0)
    desired_tension_kn: float = Field(gt=0)
    k_factor: float = Field(default=0.2, gt=0)


async def _bolt_torque_handler(inp: BoltTorqueInput) -> dict[str, Any]:
    diameter_m = inp.fastener_diameter_mm / 1000
    force_n = inp.desired_tension_kn * 1000
    return {
        'torque_nm': round(inp.k_factor * diameter_m * force_n, 2),
        'formula': 'T = K × D × F',
    }


BOLT_TORQUE = CalculatorDescriptor(
    id='bolt_torque',
    label='Bolt torque estimate',
    description='Estimates bolt torque (Nm) using T = K × D × F.',
    input_model=BoltTorqueInput,
    handler=_bolt_torque_handler,
    input_schema={
        'fastener_diameter_mm': CalculatorField(
            unit='mm', description='Nominal fastener diameter'),
        'desired_tension_kn': CalculatorField(unit='kN', description='Target clamp load'),
        'k_factor': CalculatorField(required=False, description='Nut factor (defaults to 0.2)'),
    },
    output_schema={'torque_nm': OutputField(unit='Nm')},
    applies_to=('fasteners', 'mechanical'),
)


# ============================================================
# Temperature Conversion
# ============================================================

class TemperatureInput(BaseModel):
    celsius: Optional[float] = None
    fahrenheit: Optional[float] = None


async def _temperature_handler(inp: TemperatureInput) -> dict[str, Any]:
    if inp.celsius is not None:
        return {
            'celsius': inp.celsius,
            'fahrenheit': round(inp.celsius * 9 / 5 + 32, 2),
        }
    if inp.fahrenheit is not None:
        return {
            'celsius': round((inp.fahrenheit - 32) * 5 / 9, 2),
            'fahrenheit': inp.fahrenheit,
        }
    raise ValueError('Expected celsius or fahrenheit')


TEMPERATURE_CONVERT = CalculatorDescriptor(
    id='temperature_convert',
    label='Temperature conversion',
    description='Converts between Celsius and Fahrenheit.',
    input_model=TemperatureInput,
    handler=_temperature_handler,
    input_schema={
        'celsius': CalculatorField(required=False, unit='°C'),
        'fahrenheit': CalculatorField(required=False, unit='°F'),
    },
    output_schema={
        'celsius': OutputField(unit='°C'),
        'fahrenheit': OutputField(unit='°F'),
    },
    applies_to=('environment', 'temperature'),
)


# ============================================================
# Detectors
# ============================================================

_NUM = r'(-?\d+(?:\.\d+)?)'

FLOW_RE = re.compile(
    _NUM + r'\s*(gpm|gallons?\s+per\s+minute|lpm|l/min|lit(?:er|re)s?\s+per\s+minute)',
    re.IGNORECASE)
PRESSURE_RE = re.compile(
    _NUM + r'\s*(psi[ag]?|pounds?\s+per\s+square\s+inch|bar|kpa|kilopascals?)\b',
    re.IGNORECASE)
SG_RES = [
    re.compile(r'specific\s+gravity\s*(?:of|=)?\s*' + _NUM, re.IGNORECASE),
    re.compile(r'\bsg\s*[:=]?\s*' + _NUM, re.IGNORECASE),
]
FAHRENHEIT_RE = re.compile(
    _NUM + r'\s*(?:°\s*F\b|deg(?:rees?)?\s*F\b|fahrenheit)', re.IGNORECASE)
CELSIUS_RE = re.compile(
    _NUM + r'\s*(?:°\s*C\b|deg(?:rees?)?\s*C\b|celsius)', re.IGNORECASE)
DIAMETER_RE = re.compile(
    r'(\d+(?:\.\d+)?)\s*(?:mm|millimet(?:er|re)s?)\b', re.IGNORECASE)
TENSION_RE = re.compile(
    r'(\d+(?:\.\d+)?)\s*(?:kn|kilo\s*newtons?)\b', re.IGNORECASE)
K_FACTOR_RES = [
    re.compile(r'k\s*-?factor\s*(?:of|=)?\s*(\d+(?:\.\d+)?)', re.IGNORECASE),
    re.compile(r'\bk\s*=\s*(\d+(?:\.\d+)?)', re.IGNORECASE),
]


def parse_number(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    try:
        val = float(re.sub(r'[, ]+', '', text))
    except ValueError:
        return None
    return val if math.isfinite(val) else None


def _first_number(patterns: list[re.Pattern], message: str) -> Optional[float]:
    for pat in patterns:
        m = pat.search(message)
        if m:
            return parse_number(m.group(1))
    return None


def detect_cv_inputs(message: str) -> Optional[dict[str, float]]:
    flow_m = FLOW_RE.search(message)
    delta_m = PRESSURE_RE.search(message)
    if not flow_m or not delta_m:
        return None

    flow = parse_number(flow_m.group(1))
    delta = parse_number(delta_m.group(1))
    if flow is None or delta is None:
        return None

    flow_unit = flow_m.group(2).lower()
    if re.search(r'lpm|l/min|lit', flow_unit):
        flow *= LPM_TO_GPM

    delta_unit = delta_m.group(2).lower()
    if 'bar' in delta_unit:
        delta *= BAR_TO_PSI
    elif 'kpa' in delta_unit or 'kilopascal' in delta_unit:
        delta *= KPA_TO_PSI

    inputs = {'flow_gpm': flow, 'delta_p_psi': delta}
    sg = _first_number(SG_RES, message)
    if sg is not None:
        inputs['specific_gravity'] = sg
    return inputs


def detect_temperature_input(message: str) -> Optional[dict[str, float]]:
    for key, pat in (('fahrenheit', FAHRENHEIT_RE), ('celsius', CELSIUS_RE)):
        m = pat.search(message)
        if m:
            val = parse_number(m.group(1))
            if val is not None:
                return {key: val}
    return None


def detect_bolt_torque_inputs(message: str) -> Optional[dict[str, float]]:
    diameter_m = DIAMETER_RE.search(message)
    tension_m = TENSION_RE.search(message)
    if not diameter_m or not tension_m:
        return None

    diameter = parse_number(diameter_m.group(1))
    tension = parse_number(tension_m.group(1))
    if diameter is None or tension is None:
        return None

    inputs = {'fastener_diameter_mm': diameter, 'desired_tension_kn': tension}
    k = _first_number(K_FACTOR_RES, message)
    if k is not None:
        inputs['k_factor'] = k
    return inputs


DEFAULT_CALCULATORS: tuple[Calculator, ...] = (
    Calculator(CV_FROM_FLOW, detect_cv_inputs),
    Calculator(BOLT_TORQUE, detect_bolt_torque_inputs),
    Calculator(TEMPERATURE_CONVERT, detect_temperature_input),
)


# ============================================================
# Registry
# ============================================================

class CalculatorRegistry:
    """Read-only collection of calculators, keyed by id, in declaration order."""

    def __init__(self, calculators: Iterable[Calculator]):
        entries: dict[str, Calculator] = {}
        for calc in calculators:
            if calc.id in entries:
                raise ValueError(f"Duplicate calculator id: {calc.id}")
            entries[calc.id] = calc
        self._entries = MappingProxyType(entries)

    def __iter__(self) -> Iterator[Calculator]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, calculator_id: object) -> bool:
        return calculator_id in self._entries

    def get(self, calculator_id: str) -> Optional[Calculator]:
        return self._entries.get(calculator_id)

    @property
    def descriptors(self) -> list[CalculatorDescriptor]:
        return [c.descriptor for c in self]

    def subset(self, *calculator_ids: str) -> CalculatorRegistry:
        return CalculatorRegistry(c for c in self if c.id in calculator_ids)

    def for_topics(self, topics: Iterable[str]) -> CalculatorRegistry:
        """Calculators whose applies_to overlaps the given topics."""
        wanted = {t.lower() for t in topics}
        return CalculatorRegistry(
            c for c in self if wanted & {a.lower() for a in c.descriptor.applies_to})


def build_default_registry() -> CalculatorRegistry:
    return CalculatorRegistry(DEFAULT_CALCULATORS)


# ============================================================
# Executor
# ============================================================

async def detect_and_run_calculators(
    message: str,
    registry: CalculatorRegistry,
) -> list[CalculatorExecutionResult]:
    """Run every calculator whose detector finds its inputs in `message`."""
    results: list[CalculatorExecutionResult] = []
    if not message or not len(registry):
        return results

    for calc in registry:
        desc = calc.descriptor
        try:
            inputs = calc.detector(message)
            if not inputs:
                continue
            outputs = await desc.run(inputs)
        except Exception as e:
            logger.warning("Calculator %s failed: %s", desc.id, e)
            continue

        results.append(CalculatorExecutionResult(
            id=desc.id,
            label=desc.label,
            inputs=inputs,
            outputs=outputs,
            description=desc.description,
        ))

    logger.debug("Calculators fired for message: %s", [r.id for r in results])
    return results
