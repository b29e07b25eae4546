# Command-line entry point: print a predicted bracket and, optionally, its score

import argparse
import os
import yaml
from bracket.fixtures import DEFAULT_GRAPH
from bracket.scoring import count_correct_picks, max_points, score_predictions
from bracket.state import BracketState
from bracket.tournament import load_tournament_or_default


def load_yaml_file(file_path):
    with open(file_path, mode='r', encoding='utf-8') as file:
        return yaml.safe_load(file) or {}


def format_slot(state, team_id, source_code):
    team = state.tournament.get_team(team_id)
    if team is None:
        return f"TBD ({source_code})"
    return f"{team.code} {team.name}"


def print_bracket(state):
    progress = state.get_progress()
    print(f"Groups complete: {progress['groups_complete']} / {progress['total_groups']}")
    print(f"Matches predicted: {progress['matches_complete']} / {progress['total_matches']}")
    print(f"Tiebreaker: {state.total_goals if state.total_goals is not None else 'Not set'}")

    for stage in state.get_stage_views():
        print(f"\n# {stage['label']} ({stage['completed']}/{stage['total']}, +{stage['point_value']} pts each)")
        for match in stage['matches']:
            team1 = format_slot(state, match['teams'][0], match['sources'][0])
            team2 = format_slot(state, match['teams'][1], match['sources'][1])
            winner = state.tournament.get_team(match['winner'])
            pick = f"  -> {winner.code}" if winner else ""
            print(f"  {match['id']:>4}: {team1} vs {team2}{pick}")

    champion = state.tournament.get_team(state.get_champion())
    if champion:
        print(f"\nPredicted champion: {champion.name}")


def print_score(state, results):
    predictions = state.to_dict()
    score = score_predictions(predictions, results, state.graph)
    limits = max_points(len(state.tournament.groups), state.graph)
    correct = count_correct_picks(predictions['knockout'], results.get('knockout'))
    print("\n--- Score ---")
    print(f"Group stage: {score['group_points']} / {limits['max_group_points']}")
    print(f"Knockout:    {score['knockout_points']} / {limits['max_knockout_points']}")
    print(f"Total:       {score['points']} / {limits['max_total_points']}")
    print(f"Correct winner picks: {', '.join(correct) if correct else 'none'}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Show a predicted tournament bracket.')
    parser.add_argument('predictions', help='YAML file with groups, knockout and total_goals')
    parser.add_argument('--results', help='YAML file with official results to score against')
    parser.add_argument('--tournament', help='YAML file with the group/team table')
    args = parser.parse_args(argv)

    if not os.path.exists(args.predictions):
        print(f"Predictions file not found: {args.predictions}")
        return 1

    tournament = load_tournament_or_default(args.tournament)
    try:
        state = BracketState.from_dict(load_yaml_file(args.predictions), tournament, DEFAULT_GRAPH)
    except ValueError as e:
        print(f"Invalid predictions: {e}")
        return 1

    print_bracket(state)
    if args.results:
        print_score(state, load_yaml_file(args.results))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
