# Interactive prompts
