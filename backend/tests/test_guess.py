from sketchturn.services.games.guess import evaluate_guess, levenshtein


def test_exact_guess_is_correct_not_close():
    result = evaluate_guess('cat', 'cat')
    assert result.distance == 0
    assert result.is_correct
    assert not result.is_close


def test_one_edit_is_close():
    result = evaluate_guess('aple', 'apple')
    assert result.distance == 1
    assert not result.is_correct
    assert result.is_close


def test_case_and_whitespace_are_ignored():
    assert evaluate_guess('  CaT ', 'cat').is_correct


def test_two_edits_still_close_three_not():
    assert evaluate_guess('hose', 'house').is_close
    assert evaluate_guess('hse', 'house').is_close
    far = evaluate_guess('hs', 'house')
    assert far.distance == 3
    assert not far.is_close and not far.is_correct


def test_levenshtein_edge_cases():
    assert levenshtein('', '') == 0
    assert levenshtein('', 'abc') == 3
    assert levenshtein('kitten', 'sitting') == 3
    assert levenshtein('flaw', 'lawn') == 2


def test_to_dict_uses_wire_keys():
    assert evaluate_guess('dog', 'dot').to_dict() == {'isCorrect': False, 'isClose': True, 'distance': 1}
