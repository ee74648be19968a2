"""License normalization and the project/dependency compatibility matrix."""

import re
from dataclasses import dataclass

from pypi_intel.models.schemas import LicenseCompatibility, LicenseType, Risk

L = LicenseType

PERMISSIVE = frozenset({L.MIT, L.APACHE_2, L.BSD_2, L.BSD_3, L.ISC, L.UNLICENSE, L.CC0})
PUBLIC_DOMAIN = frozenset({L.UNLICENSE, L.CC0})
COPYLEFT = frozenset({L.GPL_2, L.GPL_3, L.LGPL_21, L.LGPL_3})
KNOWN = frozenset(L) - {L.UNKNOWN}

# Licenses that oblige distributors to publish source code
SOURCE_DISCLOSURE = COPYLEFT | {L.MPL_2}
# Licenses that force the combined work under the same terms
SAME_LICENSE = frozenset({L.GPL_2, L.GPL_3})

RISK_ORDER = [Risk.LOW, Risk.MEDIUM, Risk.HIGH, Risk.CRITICAL]


@dataclass(frozen=True)
class LicenseRule:
    """What a project under one license may depend on.

    A license in neither set has no rule and needs manual review.
    """

    compatible: frozenset[LicenseType]
    incompatible: frozenset[LicenseType]
    risk: Risk


def _rule(
    compatible: frozenset[LicenseType],
    risk: Risk,
    incompatible: frozenset[LicenseType] | None = None,
) -> LicenseRule:
    if incompatible is None:
        incompatible = KNOWN - compatible
    return LicenseRule(frozenset(compatible), frozenset(incompatible), risk)


# Keyed by the project's license
LICENSE_RULES: dict[LicenseType, LicenseRule] = {
    L.MIT: _rule(PERMISSIVE | {L.MPL_2}, Risk.LOW),
    L.APACHE_2: _rule(PERMISSIVE | {L.MPL_2}, Risk.LOW),
    L.BSD_2: _rule(PERMISSIVE, Risk.LOW, incompatible=COPYLEFT | {L.PROPRIETARY}),
    L.BSD_3: _rule(PERMISSIVE, Risk.LOW, incompatible=COPYLEFT | {L.PROPRIETARY}),
    L.ISC: _rule(PERMISSIVE, Risk.LOW, incompatible=COPYLEFT | {L.PROPRIETARY}),
    L.UNLICENSE: _rule(PERMISSIVE | COPYLEFT | {L.MPL_2}, Risk.LOW),
    L.CC0: _rule(PERMISSIVE | COPYLEFT | {L.MPL_2}, Risk.LOW),
    L.MPL_2: _rule(PERMISSIVE | {L.MPL_2}, Risk.MEDIUM),
    L.LGPL_21: _rule(COPYLEFT | PUBLIC_DOMAIN, Risk.HIGH),
    L.LGPL_3: _rule(PUBLIC_DOMAIN | {L.LGPL_3, L.GPL_3}, Risk.HIGH),
    L.GPL_2: _rule(COPYLEFT | PUBLIC_DOMAIN, Risk.CRITICAL),
    L.GPL_3: _rule(PUBLIC_DOMAIN | {L.LGPL_3, L.GPL_3}, Risk.CRITICAL),
    L.PROPRIETARY: _rule(frozenset({L.PROPRIETARY}), Risk.CRITICAL),
}

# Exact identifiers after upper-casing, collapsing whitespace to "-" and
# dropping a trailing "-LICENSE"
LICENSE_ALIASES: dict[str, LicenseType] = {
    "MIT": L.MIT,
    "EXPAT": L.MIT,
    "APACHE-2.0": L.APACHE_2,
    "APACHE-2": L.APACHE_2,
    "APACHE": L.APACHE_2,
    "APACHE-SOFTWARE": L.APACHE_2,
    "APACHE-LICENSE-2.0": L.APACHE_2,
    "ASL-2.0": L.APACHE_2,
    "BSD-2-CLAUSE": L.BSD_2,
    "BSD-2": L.BSD_2,
    "SIMPLIFIED-BSD": L.BSD_2,
    "BSD-3-CLAUSE": L.BSD_3,
    "BSD-3": L.BSD_3,
    "BSD": L.BSD_3,
    "NEW-BSD": L.BSD_3,
    "MODIFIED-BSD": L.BSD_3,
    "GPL-2.0": L.GPL_2,
    "GPL-2": L.GPL_2,
    "GPLV2": L.GPL_2,
    "GPL-V2": L.GPL_2,
    "GPL-3.0": L.GPL_3,
    "GPL-3": L.GPL_3,
    "GPLV3": L.GPL_3,
    "GPL-V3": L.GPL_3,
    "GPL": L.GPL_3,
    "LGPL-2.1": L.LGPL_21,
    "LGPL-2": L.LGPL_21,
    "LGPLV2": L.LGPL_21,
    "LGPL-3.0": L.LGPL_3,
    "LGPL-3": L.LGPL_3,
    "LGPLV3": L.LGPL_3,
    "LGPL": L.LGPL_3,
    "MPL-2.0": L.MPL_2,
    "MPL-2": L.MPL_2,
    "MPL": L.MPL_2,
    "ISC": L.ISC,
    "ISCL": L.ISC,
    "UNLICENSE": L.UNLICENSE,
    "UNLICENSED": L.UNLICENSE,
    "THE-UNLICENSE": L.UNLICENSE,
    "PUBLIC-DOMAIN": L.UNLICENSE,
    "CC0": L.CC0,
    "CC0-1.0": L.CC0,
    "PROPRIETARY": L.PROPRIETARY,
    "COMMERCIAL": L.PROPRIETARY,
    "ALL-RIGHTS-RESERVED": L.PROPRIETARY,
}

# Fallback patterns for classifier strings and free text, checked in order
LICENSE_PATTERNS: list[tuple[re.Pattern, LicenseType]] = [
    (re.compile(r"\bLESSER GENERAL PUBLIC LICENSE\b.*\b(V?2(\.1)?\b|VERSION 2)|\bLGPL-?V?2"), L.LGPL_21),
    (re.compile(r"\bLESSER GENERAL PUBLIC LICENSE\b|\bLGPL"), L.LGPL_3),
    (re.compile(r"\bAFFERO\b|\bAGPL"), L.UNKNOWN),
    (re.compile(r"\bGENERAL PUBLIC LICENSE\b.*\b(V?2\b|VERSION 2)|\bGPL-?V?2"), L.GPL_2),
    (re.compile(r"\bGENERAL PUBLIC LICENSE\b|\bGPL"), L.GPL_3),
    (re.compile(r"\bMOZILLA PUBLIC LICENSE\b|\bMPL\b"), L.MPL_2),
    (re.compile(r"\bAPACHE\b"), L.APACHE_2),
    (re.compile(r"\bMIT\b"), L.MIT),
    (re.compile(r"\bBSD\b.*\b2\b|\bSIMPLIFIED BSD\b|\bFREEBSD\b"), L.BSD_2),
    (re.compile(r"\bBSD\b"), L.BSD_3),
    (re.compile(r"\bISC\b"), L.ISC),
    (re.compile(r"\bUNLICENSE\b|\bPUBLIC DOMAIN\b"), L.UNLICENSE),
    (re.compile(r"\bCC0\b"), L.CC0),
    (re.compile(r"\bPROPRIETARY\b|\bCOMMERCIAL\b|\bALL RIGHTS RESERVED\b"), L.PROPRIETARY),
]

# Trove classifiers mapped to display identifiers
CLASSIFIER_LICENSES: dict[str, str] = {
    "License :: OSI Approved :: MIT License": "MIT",
    "License :: OSI Approved :: MIT No Attribution License (MIT-0)": "MIT-0",
    "License :: OSI Approved :: Apache Software License": "Apache-2.0",
    "License :: OSI Approved :: BSD License": "BSD-3-Clause",
    "License :: OSI Approved :: GNU General Public License v3 (GPLv3)": "GPL-3.0",
    "License :: OSI Approved :: GNU General Public License v2 (GPLv2)": "GPL-2.0",
    "License :: OSI Approved :: GNU Lesser General Public License v3 (LGPLv3)": "LGPL-3.0",
    "License :: OSI Approved :: GNU Lesser General Public License v2 or later (LGPLv2+)": "LGPL-2.1",
    "License :: OSI Approved :: Mozilla Public License 2.0 (MPL 2.0)": "MPL-2.0",
    "License :: OSI Approved :: ISC License (ISCL)": "ISC",
    "License :: OSI Approved :: The Unlicense (Unlicense)": "Unlicense",
    "License :: CC0 1.0 Universal (CC0 1.0) Public Domain Dedication": "CC0-1.0",
    "License :: Public Domain": "Public Domain",
    "License :: Other/Proprietary License": "Proprietary",
    "License :: OSI Approved :: GNU Affero General Public License v3": "AGPL-3.0",
}


def normalize_license(license: str | None) -> LicenseType:
    """Map a free-text license string onto the closed set of known licenses.

    Anything that cannot be mapped (including multi-license expressions
    whose first match is not in the set) becomes ``Unknown``.
    """
    if not license or not license.strip():
        return L.UNKNOWN

    text = license.strip()
    if text in CLASSIFIER_LICENSES:
        text = CLASSIFIER_LICENSES[text]

    key = re.sub(r"\s+", "-", text.upper())
    key = re.sub(r"-LICEN[SC]E$", "", key)
    key = re.sub(r"(-ONLY|-OR-LATER|\+)$", "", key)
    if key in LICENSE_ALIASES:
        return LICENSE_ALIASES[key]

    upper = text.upper()
    for pattern, license_type in LICENSE_PATTERNS:
        if pattern.search(upper):
            return license_type
    return L.UNKNOWN


def _higher_risk(a: Risk, b: Risk) -> Risk:
    return a if RISK_ORDER.index(a) >= RISK_ORDER.index(b) else b


def check_compatibility(project_license: str | None, package_license: str | None) -> LicenseCompatibility:
    """Decide whether a dependency's license may be used in a project.

    Unknown licenses on either side, and pairs the project's rule does not
    list either way, are reported as compatible with medium risk and a
    request for manual review. Incompatible pairs take the higher of the
    two licenses' base risk tiers.
    """
    project_type = normalize_license(project_license)
    package_type = normalize_license(package_license)

    if project_type == L.UNKNOWN or package_type == L.UNKNOWN:
        return LicenseCompatibility(
            is_compatible=True,
            project_license=project_type,
            package_license=package_type,
            risk=Risk.MEDIUM,
            explanation="Unknown license compatibility. Please verify manually.",
        )

    project_rule = LICENSE_RULES[project_type]
    requires_source_disclosure = package_type in SOURCE_DISCLOSURE
    requires_same_license = package_type in SAME_LICENSE

    if package_type in project_rule.compatible:
        is_compatible, risk = True, Risk.LOW
        explanation = (
            f"{package_type.value} is compatible with {project_type.value}. "
            "You can safely use this package."
        )
    elif package_type not in project_rule.incompatible:
        is_compatible, risk = True, Risk.MEDIUM
        explanation = (
            f"No compatibility rule for {package_type.value} in a {project_type.value} "
            "project. Please verify manually."
        )
    else:
        is_compatible = False
        risk = _higher_risk(project_rule.risk, LICENSE_RULES[package_type].risk)
        if requires_same_license:
            explanation = (
                f"{package_type.value} requires your project to be licensed under the same "
                f"terms. This may conflict with your {project_type.value} license."
            )
        elif requires_source_disclosure:
            explanation = (
                f"{package_type.value} requires you to disclose your source code "
                "if you distribute the software."
            )
        else:
            explanation = (
                f"{package_type.value} is not compatible with {project_type.value}. "
                "Consider an alternative package."
            )

    return LicenseCompatibility(
        is_compatible=is_compatible,
        project_license=project_type,
        package_license=package_type,
        risk=risk,
        explanation=explanation,
        requires_source_disclosure=requires_source_disclosure,
        requires_same_license=requires_same_license,
    )


def format_license(
    license: str | None,
    license_expression: str | None = None,
    classifiers: list[str] | None = None,
) -> str:
    """Pick the best display string for a package's license.

    Priority: ``license_expression`` (SPDX), then the legacy ``license``
    field, then trove classifiers. Returns "Unknown" when none is usable.
    """
    if license_expression and license_expression.strip():
        return license_expression.strip()

    if license and license.strip() and license.strip().upper() != "UNKNOWN":
        text = license.strip()
        # Some packages put the full license text here
        if len(text) <= 50 and "\n" not in text:
            return text
        normalized = normalize_license(text)
        if normalized != L.UNKNOWN:
            return normalized.value
        first_line = text.splitlines()[0].strip()
        return first_line if len(first_line) <= 50 else first_line[:47] + "..."

    for classifier in classifiers or []:
        if classifier in CLASSIFIER_LICENSES:
            return CLASSIFIER_LICENSES[classifier]

    return "Unknown"
