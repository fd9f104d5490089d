from dmarc_policy_evaluator.app import run

if __name__ == "__main__":
    run()
