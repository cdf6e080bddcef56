class GenerationError(Exception):
    pass


class GenerationGatewayError(GenerationError):
    pass


class GenerationSubmitError(GenerationError):
    pass


class GenerationJobNotFoundError(GenerationError):
    pass
