from rade_bot.src.services.person_matcher import (
    is_similar_word,
    match_person,
    normalize_name,
    to_person_card,
)

ROSTER = [
    {
        "cpf": "98765432199",
        "name": "Dr. João Carlos Oliveira",
        "email": "joao.oliveira@preceptores.ufpr.br",
        "phone": "41999887766",
        "groupNames": ["Grupo 4 - Saúde Mental"],
    },
    {
        "cpf": "77788899000",
        "name": "Dr. João Mendes",
        "email": "joao.mendes@preceptores.ufpr.br",
        "phone": "41987654327",
        "groupNames": ["Grupo 4 - Saúde Mental"],
    },
    {
        "cpf": "44455566677",
        "name": "Dra. Fernanda Costa",
        "email": "fernanda.costa@preceptores.ufpr.br",
        "phone": None,
        "groupNames": ["Grupo 3 - Saúde da Criança"],
    },
]


def test_normalize_name_strips_accents_and_punctuation():
    assert normalize_name("  Dr. João   MENDES! ") == "dr joao mendes"


def test_edit_budget_depends_on_word_length():
    assert is_similar_word("mendis", "mendes")
    assert not is_similar_word("mandis", "mendes")
    # two edits are allowed once the word is longer than six letters
    assert is_similar_word("oliviera", "oliveira")


def test_similar_word_needs_both_distance_and_ratio():
    assert is_similar_word("fernada", "fernanda")
    assert not is_similar_word("ana", "ale")
    # one edit on a three letter word falls below the similarity ratio
    assert not is_similar_word("ana", "anx")


def test_unaccented_full_name_is_an_exact_match():
    result = match_person("Joao Mendes", ROSTER)

    assert result == {
        "name": "Dr. João Mendes",
        "email": "joao.mendes@preceptores.ufpr.br",
        "phone": "41987654327",
        "groupNames": ["Grupo 4 - Saúde Mental"],
    }


def test_card_never_carries_the_cpf():
    assert "cpf" not in match_person("Fernanda", ROSTER)
    assert "cpf" not in to_person_card(ROSTER[0])


def test_typo_returns_a_suggestion():
    result = match_person("Fernada Costa", ROSTER)

    assert result["suggestion"]["name"] == "Dra. Fernanda Costa"
    assert "parecido" in result["error"]


def test_short_names_two_edits_apart_do_not_match():
    result = match_person("Ana", [{"name": "Ale", "email": None, "phone": None, "groupNames": []}])

    assert result == {"error": 'Pessoa com nome "Ana" não encontrada.'}


def test_unknown_name_returns_error():
    result = match_person("Ricardo", ROSTER)

    assert "suggestion" not in result
    assert "não encontrada" in result["error"]


def test_empty_query_returns_error():
    assert "error" in match_person("  ", ROSTER)
