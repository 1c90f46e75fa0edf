import pytest

from tribelife.domain.beacons.llm import parse_analysis, parse_match_result


def test_match_result_uses_threshold_not_model_flag():
	result = parse_match_result('{"score": 0.7, "reason": "both like chess", "isMatch": false}', threshold=0.65)
	assert result.is_match is True
	assert result.reason == "both like chess"


def test_match_result_below_threshold():
	result = parse_match_result('{"score": 0.64, "reason": "weak"}', threshold=0.65)
	assert result.is_match is False


def test_unparsable_match_result_scores_zero():
	result = parse_match_result("not json", threshold=0.65)
	assert result.score == 0.0
	assert result.is_match is False


def test_match_result_accepts_fenced_json_and_clamps():
	result = parse_match_result('```json\n{"score": 1.4, "reason": "x"}\n```', threshold=0.65)
	assert result.score == 1.0


def test_analysis_parses_fields():
	raw = (
		'{"isAppropriate": true, "flagReason": null, "parsedIntent": "Looking for a chess partner",'
		' "category": "entertainment", "intentType": "seeking", "keywords": ["chess", "games"]}'
	)
	analysis = parse_analysis(raw, "want chess")
	assert analysis.is_appropriate is True
	assert analysis.parsed_intent == "Looking for a chess partner"
	assert analysis.keywords == ("chess", "games")


def test_unparsable_analysis_is_inappropriate():
	analysis = parse_analysis("{oops", "raw text here")
	assert analysis.is_appropriate is False
	assert analysis.parsed_intent == "raw text here"


def test_unknown_category_becomes_other():
	analysis = parse_analysis('{"isAppropriate": true, "category": "spaceflight"}', "rockets please")
	assert analysis.category == "other"


@pytest.mark.parametrize("keywords", ['"chess, go"', "5", '{"a": 1}', "null"])
def test_non_list_keywords_are_ignored(keywords):
	analysis = parse_analysis(f'{{"isAppropriate": true, "keywords": {keywords}}}', "board games tonight")
	assert analysis.is_appropriate is True
	assert analysis.keywords == ()
