from datetime import datetime

import pytest

from care_core.data import load_session


def make_row(resident, caregiver, status, label="Change", source="Tablette", when=None):
    return {
        "Résident": resident,
        "Information": label,
        "État": status,
        "Intervenant": caregiver,
        "Source": source,
        "Date fait": when,
    }


@pytest.fixture
def care_rows():
    rows = []
    for i in range(20):
        if i < 15:
            status, label = "Fait", "Change"
        elif i < 17:
            status, label = "Refus du résident", "Toilette"
        elif i == 17:
            status, label = "Refus du résident", "Repas"
        else:
            status, label = "Absent(e)", "Change"
        resident = "MME DUPONT Jacqueline (Jackie)" if i % 2 == 0 else "MME DURAND Paule Née LEROY"
        source = "Tablette" if i < 18 else "Ordinateur"
        when = f"{(i % 3) + 1:02d}/09/2025 08:30" if status == "Fait" else None
        rows.append(make_row(resident, "IDE ASQ", status, label, source, when))

    # Two completed acts on the same day, as spreadsheet serials.
    rows.append(make_row("MME DUPONT Jacqueline", "KINE", "Fait", "Rééducation", "Ordinateur", 45929.0))
    rows.append(make_row("MME DUPONT Jacqueline", "KINE", "Fait", "Rééducation", "Ordinateur", 45929.25))

    # Three completed acts over two distinct days.
    rows.append(make_row("M. MARTIN Louis", "AS Marie (remplaçante)", "Fait", "Change", "Tablette", datetime(2025, 9, 28, 8, 0)))
    rows.append(make_row("M. MARTIN Louis", "AS Marie (remplaçante)", "Fait", "Change", "Tablette", datetime(2025, 9, 28, 14, 0)))
    rows.append(make_row("M. MARTIN Louis", "AS Marie (remplaçante)", "Fait", "Change", "Tablette", "2025-09-29"))

    # One completed act without a resolvable date.
    rows.append(make_row("M. MARTIN Louis", "ASH Paul", "Fait", "Repas", "Ordinateur", None))
    rows.append(make_row("M. MARTIN Louis", "ASH Paul", "Non nécessaire", "Repas", "Ordinateur", None))

    rows.append(make_row(None, None, None, None, None, "pas une date"))
    return rows


@pytest.fixture
def session(care_rows):
    return load_session(care_rows, source_name="historique.xlsx")
